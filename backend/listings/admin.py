from django.contrib import admin

from .models import Listing


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ("title", "owner", "city", "price_per_hour", "is_active", "created_at")
    list_filter = ("is_active", "city")
    search_fields = ("title", "address", "owner__username")
