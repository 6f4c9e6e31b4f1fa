"""Celery tasks for bookings."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from payments.stripe_api import StripeConfigurationError, StripeTransientError

from .domain import complete_booking, mark_cancelled, queue_status_email
from .models import Booking

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Booking expired before payment."


@shared_task(name="bookings.expire_stale_pending_bookings")
def expire_stale_pending_bookings() -> int:
    """
    Cancel pending bookings that were never paid.

    A booking expires once it has been pending longer than
    BOOKING_PENDING_TTL_MINUTES or its start time has passed. Bookings whose
    payment is already processing are left for the webhook to settle.
    Returns the number of bookings expired.
    """
    from payments.models import Payment
    from payments.services import void_open_payments

    now = timezone.now()
    ttl = timedelta(minutes=getattr(settings, "BOOKING_PENDING_TTL_MINUTES", 30))
    stale_qs = (
        Booking.objects.filter(status=Booking.Status.PENDING)
        .filter(Q(created_at__lte=now - ttl) | Q(start_at__lte=now))
        .exclude(payments__status=Payment.Status.PROCESSING)
        .select_related("listing", "host", "driver")
        .distinct()
    )

    expired_count = 0
    for booking in stale_qs:
        try:
            voided = void_open_payments(booking)
        except (StripeTransientError, StripeConfigurationError):
            logger.warning(
                "bookings: could not void payment for stale booking",
                extra={"booking_id": booking.id},
                exc_info=True,
            )
            continue
        if not voided:
            logger.info(
                "bookings: stale booking has a charge in flight, leaving it to the webhook",
                extra={"booking_id": booking.id},
            )
            continue

        with transaction.atomic():
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            settled = locked.payments.filter(
                status__in=[Payment.Status.PROCESSING, Payment.Status.COMPLETED]
            ).exists()
            if locked.status != Booking.Status.PENDING or settled:
                continue
            mark_cancelled(locked, actor="system", auto=True, reason=EXPIRED_REASON)
        expired_count += 1
        queue_status_email(locked)

    if expired_count:
        logger.info("bookings: expired stale pending bookings", extra={"count": expired_count})
    return expired_count


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> int:
    """Mark confirmed bookings whose slot has ended as completed."""
    now = timezone.now()
    finished_qs = Booking.objects.filter(
        status=Booking.Status.CONFIRMED,
        end_at__lte=now,
    ).select_related("listing", "host", "driver")

    completed_count = 0
    for booking in finished_qs:
        try:
            complete_booking(booking)
        except ValidationError:
            logger.warning(
                "bookings: could not complete finished booking",
                extra={"booking_id": booking.id},
                exc_info=True,
            )
            continue
        completed_count += 1
    return completed_count
