"""Routes for booking requests, availability lookups and lifecycle actions."""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api import BookingViewSet

app_name = "bookings"

router = DefaultRouter()
router.register("", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
]
