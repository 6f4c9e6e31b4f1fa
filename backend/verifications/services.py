"""License plate verification against the plate recorded on a booking."""

from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from bookings.models import Booking
from core.state_machine import assert_transition
from users.models import User

from .formats import VerificationResult, normalize_plate, normalize_state
from .models import LicensePlateVerification

logger = logging.getLogger(__name__)

Status = LicensePlateVerification.Status

VERIFICATION_TRANSITIONS = {
    Status.PENDING: frozenset({Status.VERIFIED, Status.FAILED}),
    Status.VERIFIED: frozenset({Status.FAILED}),
    Status.FAILED: frozenset({Status.VERIFIED, Status.DISPUTED}),
    Status.DISPUTED: frozenset({Status.VERIFIED, Status.FAILED}),
}


def create_verification_for_booking(booking: Booking) -> LicensePlateVerification:
    """Open the pending verification record that accompanies every booking."""
    verification, _ = LicensePlateVerification.objects.get_or_create(
        booking=booking,
        defaults={
            "license_plate": booking.license_plate,
            "license_plate_state": booking.license_plate_state,
        },
    )
    return verification


def _locked_verification(booking: Booking) -> LicensePlateVerification:
    create_verification_for_booking(booking)
    return LicensePlateVerification.objects.select_for_update().get(booking=booking)


def _record_outcome(
    verification: LicensePlateVerification,
    status: str,
    *,
    verified_by: str,
    method: str,
    notes: str | None = None,
) -> None:
    if verification.verification_status != status:
        assert_transition(
            VERIFICATION_TRANSITIONS,
            verification.verification_status,
            status,
            field="verification_status",
            label="verification",
        )
    verification.verification_status = status
    verification.verified_by = verified_by
    verification.verification_method = method
    update_fields = ["verification_status", "verified_by", "verification_method", "updated_at"]
    if status in (Status.VERIFIED, Status.FAILED):
        verification.verified_at = timezone.now()
        update_fields.append("verified_at")
    if notes:
        verification.verification_notes = notes
        update_fields.append("verification_notes")
    verification.save(update_fields=update_fields)
    logger.info(
        "verifications: outcome recorded",
        extra={
            "booking_id": verification.booking_id,
            "status": status,
            "verified_by": verified_by,
            "method": method,
        },
    )


def _ensure_can_view(booking: Booking, actor: User) -> None:
    if not (booking.is_participant(actor) or actor.is_staff):
        raise PermissionDenied("Only the host, driver or staff can verify this booking.")


def get_verification(booking: Booking, *, actor: User) -> LicensePlateVerification:
    _ensure_can_view(booking, actor)
    return create_verification_for_booking(booking)


def verify_plate_for_booking(
    booking: Booking,
    plate: str,
    state: str,
    *,
    actor: User,
) -> VerificationResult:
    """
    Compare a sighted plate and state with the ones recorded on the booking.

    A full match marks the record verified with confidence 1.0. The same plate
    under a different state is reported with confidence 0.5 and leaves the
    record as it was. Anything else marks the record failed.
    """
    _ensure_can_view(booking, actor)

    expected_plate = normalize_plate(booking.license_plate)
    expected_state = normalize_state(booking.license_plate_state)
    provided_plate = normalize_plate(plate)
    provided_state = normalize_state(state)
    details = {
        "expected": {"plate": expected_plate, "state": expected_state},
        "provided": {"plate": provided_plate, "state": provided_state},
    }

    if expected_plate == provided_plate and expected_state != provided_state:
        return VerificationResult(
            success=False,
            message="License plate matches but state is different",
            confidence=0.5,
            details=details,
        )

    matched = expected_plate == provided_plate and expected_state == provided_state
    with transaction.atomic():
        verification = _locked_verification(booking)
        _record_outcome(
            verification,
            Status.VERIFIED if matched else Status.FAILED,
            verified_by=LicensePlateVerification.VerifiedBy.SYSTEM,
            method=LicensePlateVerification.Method.AUTOMATIC,
        )

    if matched:
        return VerificationResult(
            success=True,
            message="License plate matches booking",
            confidence=1.0,
            details=details,
        )
    return VerificationResult(
        success=False,
        message="License plate does not match booking",
        confidence=0.0,
        details=details,
    )


def manual_verification(
    booking: Booking,
    *,
    actor: User,
    is_verified: bool,
    notes: str = "",
) -> LicensePlateVerification:
    """Record a host's (or staff member's) in-person verdict on the parked vehicle."""
    if actor.id == booking.host_id:
        verified_by = LicensePlateVerification.VerifiedBy.HOST
    elif actor.is_staff:
        verified_by = LicensePlateVerification.VerifiedBy.ADMIN
    else:
        raise PermissionDenied("Only the host or staff can verify this booking manually.")

    with transaction.atomic():
        verification = _locked_verification(booking)
        _record_outcome(
            verification,
            Status.VERIFIED if is_verified else Status.FAILED,
            verified_by=verified_by,
            method=LicensePlateVerification.Method.MANUAL,
            notes=notes.strip() or None,
        )
    return verification


def dispute_verification(
    booking: Booking,
    *,
    actor: User,
    notes: str = "",
) -> LicensePlateVerification:
    """Let the driver contest a failed verification."""
    if actor.id != booking.driver_id:
        raise PermissionDenied("Only the driver can dispute this verification.")

    with transaction.atomic():
        verification = _locked_verification(booking)
        if verification.verification_status != Status.FAILED:
            raise ValidationError(
                {"verification_status": ["Only failed verifications can be disputed."]}
            )
        _record_outcome(
            verification,
            Status.DISPUTED,
            verified_by=LicensePlateVerification.VerifiedBy.DRIVER,
            method=verification.verification_method,
            notes=notes.strip() or None,
        )
    return verification
