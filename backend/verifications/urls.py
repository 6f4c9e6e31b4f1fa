from django.urls import path

from . import api

app_name = "verifications"

urlpatterns = [
    path("validate-format/", api.validate_format, name="validate_format"),
    path("bookings/<int:booking_id>/", api.booking_verification, name="booking"),
    path("bookings/<int:booking_id>/verify/", api.verify_booking_plate, name="verify"),
    path("bookings/<int:booking_id>/manual/", api.manual_booking_verification, name="manual"),
    path("bookings/<int:booking_id>/dispute/", api.dispute_booking_verification, name="dispute"),
]
