from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import Booking
from bookings.tasks import complete_finished_bookings, expire_stale_pending_bookings
from conftest import capture_payment, slot
from payments.models import Payment

pytestmark = pytest.mark.django_db


def _age(booking, minutes):
    Booking.objects.filter(pk=booking.pk).update(
        created_at=timezone.now() - timedelta(minutes=minutes)
    )


def test_expires_pending_bookings_past_ttl(settings, booking_factory, fake_stripe):
    settings.BOOKING_PENDING_TTL_MINUTES = 30
    stale = booking_factory()
    fresh = booking_factory(start_at=slot(12), end_at=slot(13))
    _age(stale, 45)
    _age(fresh, 5)

    expired = expire_stale_pending_bookings()

    assert expired == 1
    stale.refresh_from_db()
    fresh.refresh_from_db()
    assert stale.status == Booking.Status.CANCELLED
    assert stale.cancelled_by == "system"
    assert stale.auto_cancelled is True
    assert fresh.status == Booking.Status.PENDING


def test_expires_pending_booking_once_start_passes(booking_factory):
    now = timezone.now()
    booking = booking_factory(start_at=now - timedelta(minutes=5), end_at=now + timedelta(hours=1))

    assert expire_stale_pending_bookings() == 1
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED


def test_expiry_voids_open_payment(booking_factory, driver_user, fake_stripe):
    booking = booking_factory()
    _age(booking, 120)
    payment = Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee_id=booking.host_id,
        amount_cents=1000,
        stripe_payment_intent_id="pi_open",
    )

    expire_stale_pending_bookings()

    payment.refresh_from_db()
    assert payment.status == Payment.Status.FAILED
    assert fake_stripe.cancelled == ["pi_open"]


def test_expiry_skips_processing_payment(booking_factory, driver_user):
    booking = booking_factory()
    _age(booking, 120)
    Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee_id=booking.host_id,
        amount_cents=1000,
        status=Payment.Status.PROCESSING,
        stripe_payment_intent_id="pi_processing",
    )

    assert expire_stale_pending_bookings() == 0
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


def test_completes_finished_confirmed_bookings(booking_factory):
    now = timezone.now()
    finished = booking_factory(
        start_at=now - timedelta(hours=3),
        end_at=now - timedelta(hours=1),
        status=Booking.Status.CONFIRMED,
    )
    running = booking_factory(
        start_at=now - timedelta(minutes=30),
        end_at=now + timedelta(minutes=30),
        status=Booking.Status.CONFIRMED,
    )

    assert complete_finished_bookings() == 1
    finished.refresh_from_db()
    running.refresh_from_db()
    assert finished.status == Booking.Status.COMPLETED
    assert running.status == Booking.Status.CONFIRMED


def test_expiry_leaves_booking_paid_while_cancel_was_in_flight(
    booking_factory, driver_user, fake_stripe, stripe_refuses_cancel
):
    booking = booking_factory()
    _age(booking, 120)
    payment = Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee_id=booking.host_id,
        amount_cents=1000,
        stripe_payment_intent_id="pi_racing",
    )
    stripe_refuses_cancel(on_cancel=capture_payment)

    assert expire_stale_pending_bookings() == 0

    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert booking.status == Booking.Status.CONFIRMED
    assert fake_stripe.refunds == []


def test_expiry_waits_when_stripe_refuses_cancel(
    booking_factory, driver_user, fake_stripe, stripe_refuses_cancel
):
    booking = booking_factory()
    _age(booking, 120)
    payment = Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee_id=booking.host_id,
        amount_cents=1000,
        stripe_payment_intent_id="pi_unreported",
    )
    stripe_refuses_cancel()

    assert expire_stale_pending_bookings() == 0

    payment.refresh_from_db()
    booking.refresh_from_db()
    assert payment.status == Payment.Status.PENDING
    assert booking.status == Booking.Status.PENDING
