from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "listing", "driver", "host", "start_at", "end_at", "status")
    list_filter = ("status", "auto_cancelled")
    search_fields = ("license_plate", "listing__title", "driver__username")
    raw_id_fields = ("listing", "host", "driver")
