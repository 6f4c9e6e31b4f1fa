"""API viewsets and permissions for bookings."""

from __future__ import annotations

import logging
from datetime import date

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from listings.models import Listing
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
)

from .domain import booked_ranges, cancel_booking, complete_booking
from .models import Booking
from .serializers import BookingSerializer

logger = logging.getLogger(__name__)


class IsBookingParticipant(permissions.BasePermission):
    """Allow access only to users tied to the booking."""

    def has_object_permission(self, request, view, obj: Booking) -> bool:
        """Check that the user is the booking host or driver."""
        return obj.is_participant(request.user)


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create, read and transition bookings."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated, IsBookingParticipant)

    def get_queryset(self):
        """Restrict bookings to the authenticated participant."""
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        qs = Booking.objects.select_related("listing", "host", "driver").filter(
            Q(host=user) | Q(driver=user)
        )
        role = self.request.query_params.get("role")
        if role == "host":
            qs = qs.filter(host=user)
        elif role == "driver":
            qs = qs.filter(driver=user)
        status_param = self.request.query_params.get("status")
        if status_param:
            qs = qs.filter(status=status_param)
        return qs.order_by("-created_at")

    def get_object(self):
        """Fetch a single booking and enforce participant permissions."""
        obj = get_object_or_404(
            Booking.objects.select_related("listing", "host", "driver"),
            pk=self.kwargs["pk"],
        )
        self.check_object_permissions(self.request, obj)
        return obj

    def create(self, request, *args, **kwargs):
        try:
            return super().create(request, *args, **kwargs)
        except DatabaseError:
            logger.exception("bookings: availability check failed")
            return Response(
                {"detail": "Could not verify availability; please try again."},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

    @action(
        detail=False,
        methods=["get"],
        url_path="availability",
        permission_classes=[permissions.AllowAny],
    )
    def availability(self, request, *args, **kwargs):
        """Return booked [start, end) ranges for a listing on a given day."""
        listing_param = request.query_params.get("listing")
        if not listing_param:
            return Response(
                {"detail": "listing query parameter is required."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            listing_id = int(listing_param)
        except (TypeError, ValueError):
            return Response(
                {"detail": "listing must be a valid integer."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            day = date.fromisoformat(request.query_params.get("date") or "")
        except ValueError:
            return Response(
                {"detail": "date must be formatted as YYYY-MM-DD."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        listing = get_object_or_404(Listing.objects.filter(is_active=True), pk=listing_id)
        payload = [
            {"start_at": item["start_at"].isoformat(), "end_at": item["end_at"].isoformat()}
            for item in booked_ranges(listing, day).values("start_at", "end_at")
        ]
        return Response(
            {
                "listing": listing.id,
                "date": day.isoformat(),
                "available_from": listing.available_from.strftime("%H:%M"),
                "available_to": listing.available_to.strftime("%H:%M"),
                "booked": payload,
            },
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, *args, **kwargs):
        """Cancel a booking (host or driver)."""
        booking: Booking = self.get_object()
        reason = (request.data.get("reason") or "").strip()
        try:
            cancel_booking(booking, actor=request.user, reason=reason)
        except ValidationError as exc:
            return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
        except StripeTransientError:
            return Response(
                {"detail": "Temporary payment issue while refunding; please retry."},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        except StripePaymentError as exc:
            message = str(exc) or "Unable to process refund for this cancellation."
            return Response({"detail": message}, status=status.HTTP_400_BAD_REQUEST)
        except StripeConfigurationError:
            logger.exception("Stripe configuration error while cancelling booking %s", booking.id)
            return Response(
                {"detail": "Payment processor is not configured; please try again later."},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return Response(self.get_serializer(booking).data)

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, *args, **kwargs):
        """Mark a confirmed booking as completed (host-only)."""
        booking: Booking = self.get_object()
        if booking.host_id != request.user.id:
            return Response(
                {"detail": "Only the host can complete this booking."},
                status=status.HTTP_403_FORBIDDEN,
            )
        try:
            complete_booking(booking, actor=request.user)
        except ValidationError as exc:
            return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(booking).data)
