from django.contrib import admin

from .models import NotificationLog


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "type", "recipient", "booking_id", "status")
    list_filter = ("type", "status")
    search_fields = ("recipient", "error")
