from django.contrib import admin

from .models import LicensePlateVerification


@admin.register(LicensePlateVerification)
class LicensePlateVerificationAdmin(admin.ModelAdmin):
    list_display = ("booking", "license_plate", "license_plate_state", "verification_status")
    list_filter = ("verification_status", "verified_by", "verification_method")
    search_fields = ("license_plate",)
    raw_id_fields = ("booking",)
