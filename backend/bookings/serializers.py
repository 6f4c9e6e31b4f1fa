"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from listings.models import Listing
from users.models import LicensePlate

from .domain import create_booking
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Serialize Booking instances for API usage."""

    listing = serializers.PrimaryKeyRelatedField(queryset=Listing.objects.filter(is_active=True))
    host = serializers.PrimaryKeyRelatedField(read_only=True)
    driver = serializers.PrimaryKeyRelatedField(read_only=True)
    listing_title = serializers.ReadOnlyField(source="listing.title")
    listing_address = serializers.ReadOnlyField(source="listing.address")
    host_username = serializers.ReadOnlyField(source="host.username")
    driver_username = serializers.ReadOnlyField(source="driver.username")
    license_plate_id = serializers.IntegerField(
        write_only=True,
        required=False,
        allow_null=True,
        help_text="Registered plate to park with; defaults to the driver's default plate.",
    )

    class Meta:
        model = Booking
        fields = (
            "id",
            "listing",
            "listing_title",
            "listing_address",
            "host",
            "host_username",
            "driver",
            "driver_username",
            "start_at",
            "end_at",
            "total_price",
            "status",
            "license_plate",
            "license_plate_state",
            "license_plate_id",
            "cancelled_by",
            "cancelled_reason",
            "auto_cancelled",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "host",
            "driver",
            "total_price",
            "status",
            "license_plate",
            "license_plate_state",
            "cancelled_by",
            "cancelled_reason",
            "auto_cancelled",
            "created_at",
            "updated_at",
        )

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            raise serializers.ValidationError({"non_field_errors": ["Authentication required."]})

        plate_id = attrs.pop("license_plate_id", None)
        if plate_id is not None:
            plate = LicensePlate.objects.filter(user=user, pk=plate_id).first()
            if plate is None:
                raise serializers.ValidationError(
                    {"license_plate_id": ["License plate not found."]}
                )
            attrs["plate"] = plate
        return attrs

    def create(self, validated_data: dict[str, Any]) -> Booking:
        """Create a pending booking for the requesting driver."""
        request = self.context["request"]
        try:
            return create_booking(
                driver=request.user,
                listing=validated_data["listing"],
                start_at=validated_data["start_at"],
                end_at=validated_data["end_at"],
                license_plate=validated_data.get("plate"),
            )
        except DjangoValidationError as exc:
            raise serializers.ValidationError(exc.message_dict)
