"""Domain helpers for booking validation, overlap detection and state transitions."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Literal, Optional

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from core.state_machine import assert_transition
from listings.models import Listing
from listings.services import compute_booking_total
from notifications import tasks as notification_tasks
from users.models import LicensePlate, User
from users.plates import get_default_license_plate
from verifications.services import create_verification_for_booking

from .models import Booking

logger = logging.getLogger(__name__)

# Statuses that hold a slot; cancelled and completed bookings free it.
BLOCKING_BOOKING_STATUSES = (
    Booking.Status.PENDING,
    Booking.Status.CONFIRMED,
)

BOOKING_TRANSITIONS = {
    Booking.Status.PENDING: frozenset({Booking.Status.CONFIRMED, Booking.Status.CANCELLED}),
    Booking.Status.CONFIRMED: frozenset({Booking.Status.CANCELLED, Booking.Status.COMPLETED}),
}

CancelActor = Literal["driver", "host", "system"]

# Latest closing time that still lets a slot run until midnight.
END_OF_DAY = time(23, 59)


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open intersection test: touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def validate_booking_window(start_at: datetime | None, end_at: datetime | None) -> None:
    """Validate that both timestamps exist, are aware and form a future range."""
    if not start_at or not end_at:
        raise ValidationError({"non_field_errors": ["Start and end times are required."]})
    if timezone.is_naive(start_at) or timezone.is_naive(end_at):
        raise ValidationError({"non_field_errors": ["Times must include a timezone."]})
    if start_at >= end_at:
        raise ValidationError({"end_at": ["End time must be after start time."]})
    if start_at < timezone.now():
        raise ValidationError({"start_at": ["Start time cannot be in the past."]})


def ensure_within_availability(listing: Listing, start_at: datetime, end_at: datetime) -> None:
    """
    Require the slot to sit on one local day inside the listing's daily window.

    A slot ending exactly at the following midnight belongs to its start day;
    it fits when the listing stays open until the last minute of that day.
    """
    local_start = timezone.localtime(start_at)
    local_end = timezone.localtime(end_at)
    ends_at_midnight = local_end.time() == time.min and local_end.date() == (
        local_start.date() + timedelta(days=1)
    )
    if local_start.date() != local_end.date() and not ends_at_midnight:
        raise ValidationError({"end_at": ["Bookings must start and end on the same day."]})
    if ends_at_midnight:
        fits_end = listing.available_to >= END_OF_DAY
    else:
        fits_end = local_end.time() <= listing.available_to
    if local_start.time() < listing.available_from or not fits_end:
        raise ValidationError(
            {
                "non_field_errors": [
                    "Requested time is outside the listing's availability "
                    f"({listing.available_from:%H:%M}-{listing.available_to:%H:%M})."
                ]
            }
        )


def find_overlapping_bookings(
    listing: Listing,
    start_at: datetime,
    end_at: datetime,
    *,
    exclude_booking_id: Optional[int] = None,
) -> QuerySet[Booking]:
    """Return slot-holding bookings on the listing that intersect [start_at, end_at)."""
    qs = Booking.objects.filter(listing=listing, status__in=BLOCKING_BOOKING_STATUSES)
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    return qs.filter(start_at__lt=end_at, end_at__gt=start_at).order_by("start_at")


def ensure_no_conflict(
    listing: Listing,
    start_at: datetime,
    end_at: datetime,
    *,
    exclude_booking_id: Optional[int] = None,
) -> None:
    """Ensure there are no overlapping bookings for the listing."""
    conflicts = find_overlapping_bookings(
        listing,
        start_at,
        end_at,
        exclude_booking_id=exclude_booking_id,
    )
    if conflicts.exists():
        raise ValidationError(
            {"non_field_errors": ["This time slot is already booked. Please choose another time."]}
        )


def booked_ranges(listing: Listing, day: date) -> QuerySet[Booking]:
    """Slot-holding bookings that touch the given local day."""
    tz = timezone.get_current_timezone()
    day_start = timezone.make_aware(datetime.combine(day, time.min), tz)
    day_end = day_start + timedelta(days=1)
    return find_overlapping_bookings(listing, day_start, day_end)


def can_transition(booking: Booking, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(booking.status, frozenset())


def _locked_status(booking: Booking) -> str:
    """Status stored for the booking, read with its row locked. Call inside atomic()."""
    return (
        Booking.objects.select_for_update()
        .values_list("status", flat=True)
        .get(pk=booking.pk)
    )


def transition_booking(booking: Booking, target: str) -> None:
    """Move the booking to ``target`` or raise if the transition table forbids it."""
    with transaction.atomic():
        previous = _locked_status(booking)
        assert_transition(BOOKING_TRANSITIONS, previous, target, label="booking")
        booking.status = target
        booking.save(update_fields=["status", "updated_at"])
    logger.info(
        "bookings: status changed",
        extra={"booking_id": booking.id, "from": previous, "to": target},
    )


def mark_cancelled(
    booking: Booking,
    *,
    actor: CancelActor,
    auto: bool,
    reason: str | None = None,
) -> None:
    """Cancel the booking in place, recording who cancelled it."""
    with transaction.atomic():
        assert_transition(
            BOOKING_TRANSITIONS,
            _locked_status(booking),
            Booking.Status.CANCELLED,
            label="booking",
        )
        booking.status = Booking.Status.CANCELLED
        booking.cancelled_by = actor
        if reason:
            booking.cancelled_reason = reason
        booking.auto_cancelled = auto
        booking.save(
            update_fields=[
                "status",
                "cancelled_by",
                "cancelled_reason",
                "auto_cancelled",
                "updated_at",
            ]
        )


def actor_role(booking: Booking, actor: User) -> CancelActor:
    if actor.id == booking.driver_id:
        return "driver"
    if actor.id == booking.host_id:
        return "host"
    raise PermissionDenied("Only the host or driver can act on this booking.")


def _resolve_license_plate(driver: User, license_plate: LicensePlate | None) -> LicensePlate:
    if license_plate is None:
        license_plate = get_default_license_plate(driver)
    if license_plate is None:
        raise ValidationError(
            {
                "license_plate": [
                    "Please select a license plate for your booking. "
                    "You can add one in your profile."
                ]
            }
        )
    if license_plate.user_id != driver.id:
        raise ValidationError({"license_plate": ["License plate is not registered to you."]})
    return license_plate


def create_booking(
    *,
    driver: User,
    listing: Listing,
    start_at: datetime,
    end_at: datetime,
    license_plate: LicensePlate | None = None,
) -> Booking:
    """
    Persist a pending booking after validating the slot.

    The listing row is locked for the duration of the transaction so two
    drivers requesting the same listing are serialized: the overlap check and
    the insert are atomic with respect to each other. Errors raised by the
    check propagate; a booking is never written without a successful check.
    """
    validate_booking_window(start_at, end_at)
    if not driver.is_driver():
        raise ValidationError({"non_field_errors": ["Only drivers can book parking spaces."]})
    if listing.owner_id == driver.id:
        raise ValidationError({"listing": ["You cannot book your own listing."]})
    plate = _resolve_license_plate(driver, license_plate)

    with transaction.atomic():
        locked_listing = Listing.objects.select_for_update().get(pk=listing.pk)
        if not locked_listing.is_active:
            raise ValidationError({"listing": ["This listing is not accepting bookings."]})
        ensure_within_availability(locked_listing, start_at, end_at)
        ensure_no_conflict(locked_listing, start_at, end_at)

        booking = Booking.objects.create(
            listing=locked_listing,
            host_id=locked_listing.owner_id,
            driver=driver,
            start_at=start_at,
            end_at=end_at,
            total_price=compute_booking_total(
                listing=locked_listing,
                start_at=start_at,
                end_at=end_at,
            ),
            status=Booking.Status.PENDING,
            license_plate=plate.plate_number,
            license_plate_state=plate.state,
        )
        create_verification_for_booking(booking)

    logger.info(
        "bookings: created",
        extra={
            "booking_id": booking.id,
            "listing_id": booking.listing_id,
            "driver_id": driver.id,
            "total_price": str(booking.total_price),
        },
    )
    try:
        notification_tasks.send_booking_request_email.delay(booking.host_id, booking.id)
    except Exception:
        logger.info(
            "notifications: could not queue send_booking_request_email",
            exc_info=True,
        )
    return booking


def cancel_booking(booking: Booking, *, actor: User, reason: str = "") -> Booking:
    """
    Cancel a pending or confirmed booking on behalf of its host or driver.

    Open payments are voided; a completed payment is refunded in full before
    the booking is cancelled. When an intent can no longer be voided and its
    charge has not been recorded yet, nothing is cancelled and the caller is
    asked to retry.
    """
    from payments.services import refund_payment, void_open_payments

    role = actor_role(booking, actor)
    assert_transition(
        BOOKING_TRANSITIONS, booking.status, Booking.Status.CANCELLED, label="booking"
    )

    voided = True
    if not booking.payments.filter(status="completed").exists():
        voided = void_open_payments(booking)

    # Looked up again: a charge may have been captured while its intent was being voided.
    completed_payment = booking.payments.filter(status="completed").first()
    if completed_payment is not None:
        refund_payment(completed_payment, actor=actor, cancel_reason=reason or None)
    elif not voided:
        raise ValidationError(
            {"payments": ["A payment for this booking is still settling. Please try again shortly."]}
        )

    booking.refresh_from_db()
    if booking.is_active():
        mark_cancelled(booking, actor=role, auto=False, reason=reason or None)

    queue_status_email(booking)
    return booking


def complete_booking(booking: Booking, *, actor: User | None = None) -> Booking:
    """Mark a confirmed booking completed; hosts may do so once the slot has started."""
    now = timezone.now()
    if actor is not None:
        if actor.id != booking.host_id:
            raise PermissionDenied("Only the host can complete this booking.")
        if booking.start_at > now:
            raise ValidationError({"status": ["Booking has not started yet."]})
    elif booking.end_at > now:
        raise ValidationError({"status": ["Booking has not ended yet."]})

    transition_booking(booking, Booking.Status.COMPLETED)
    queue_status_email(booking)
    return booking


def queue_status_email(booking: Booking) -> None:
    try:
        notification_tasks.send_booking_status_email.delay(
            booking.driver_id,
            booking.id,
            booking.status,
        )
    except Exception:
        logger.info(
            "notifications: could not queue send_booking_status_email",
            exc_info=True,
        )
