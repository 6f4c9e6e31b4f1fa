"""HTTP endpoints for license plate verification."""

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings.models import Booking

from .formats import validate_plate_format
from .serializers import (
    DisputeSerializer,
    LicensePlateVerificationSerializer,
    ManualVerificationSerializer,
    PlateInputSerializer,
)
from .services import (
    dispute_verification,
    get_verification,
    manual_verification,
    verify_plate_for_booking,
)


def _booking(booking_id: int) -> Booking:
    return get_object_or_404(Booking.objects.select_related("listing"), pk=booking_id)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def booking_verification(request, booking_id: int):
    verification = get_verification(_booking(booking_id), actor=request.user)
    return Response(LicensePlateVerificationSerializer(verification).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def verify_booking_plate(request, booking_id: int):
    """Check a sighted plate against the booking; mismatches still return 200."""
    serializer = PlateInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    booking = _booking(booking_id)
    result = verify_plate_for_booking(
        booking,
        serializer.validated_data["license_plate"],
        serializer.validated_data["state"],
        actor=request.user,
    )
    payload = result.as_dict()
    payload["verification"] = LicensePlateVerificationSerializer(
        get_verification(booking, actor=request.user)
    ).data
    return Response(payload)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def manual_booking_verification(request, booking_id: int):
    serializer = ManualVerificationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    try:
        verification = manual_verification(
            _booking(booking_id),
            actor=request.user,
            is_verified=serializer.validated_data["is_verified"],
            notes=serializer.validated_data.get("notes", ""),
        )
    except ValidationError as exc:
        return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
    return Response(LicensePlateVerificationSerializer(verification).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def dispute_booking_verification(request, booking_id: int):
    serializer = DisputeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    try:
        verification = dispute_verification(
            _booking(booking_id),
            actor=request.user,
            notes=serializer.validated_data.get("notes", ""),
        )
    except ValidationError as exc:
        return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
    return Response(LicensePlateVerificationSerializer(verification).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def validate_format(request):
    serializer = PlateInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = validate_plate_format(
        serializer.validated_data["license_plate"],
        serializer.validated_data["state"],
    )
    return Response(result.as_dict())
