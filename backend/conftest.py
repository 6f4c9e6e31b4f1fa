"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from datetime import datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Callable

import pytest
import stripe
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from listings.models import Listing
from users.models import LicensePlate

User = get_user_model()


def _create_user(*, username: str, role: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        password="testpass",
        email=f"{username}@example.com",
        role=role,
        **extra,
    )


def slot(hour: int, minute: int = 0, *, days_ahead: int = 1) -> datetime:
    """Aware datetime ``days_ahead`` local days from today at hour:minute."""
    day = timezone.localdate() + timedelta(days=days_ahead)
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def host_user():
    return _create_user(username="host", role=User.Role.HOST)


@pytest.fixture
def driver_user():
    user = _create_user(username="driver", role=User.Role.DRIVER)
    LicensePlate.objects.create(user=user, plate_number="ABC123", state="CA", is_default=True)
    return user


@pytest.fixture
def other_driver():
    user = _create_user(username="other-driver", role=User.Role.DRIVER)
    LicensePlate.objects.create(user=user, plate_number="XYZ789", state="NY", is_default=True)
    return user


@pytest.fixture
def staff_user():
    return _create_user(username="staff", role=User.Role.DRIVER, is_staff=True)


@pytest.fixture
def listing(host_user):
    return Listing.objects.create(
        owner=host_user,
        title="Covered Driveway",
        description="Single covered spot close to downtown.",
        address="412 Market St",
        city="San Francisco",
        price_per_hour=Decimal("10.00"),
        available_from=time(6, 0),
        available_to=time(22, 0),
        is_active=True,
    )


@pytest.fixture
def booking_factory(listing, driver_user) -> Callable[..., Booking]:
    """Insert bookings directly, bypassing the overlap check."""

    def _factory(
        *,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        status: str = Booking.Status.PENDING,
        driver: User | None = None,
        target_listing: Listing | None = None,
    ) -> Booking:
        target = target_listing or listing
        booker = driver or driver_user
        start_at = start_at or slot(9)
        end_at = end_at or slot(10)
        plate = booker.license_plates.filter(is_default=True).first()
        hours = Decimal((end_at - start_at).total_seconds()) / Decimal(3600)
        return Booking.objects.create(
            listing=target,
            host=target.owner,
            driver=booker,
            start_at=start_at,
            end_at=end_at,
            total_price=(target.price_per_hour * hours).quantize(Decimal("0.01")),
            status=status,
            license_plate=plate.plate_number if plate else "ABC123",
            license_plate_state=plate.state if plate else "CA",
        )

    return _factory


@pytest.fixture
def fake_stripe(monkeypatch):
    """Replace the Stripe SDK calls used by the payments app with in-memory fakes."""
    counter = itertools.count(1)
    state = SimpleNamespace(intents={}, refunds=[], customers=[], create_calls=[], cancelled=[])

    def create_intent(**kwargs):
        state.create_calls.append(kwargs)
        intent_id = f"pi_test_{next(counter)}"
        intent = SimpleNamespace(
            id=intent_id,
            client_secret=f"{intent_id}_secret_test",
            status="requires_payment_method",
            amount=kwargs["amount"],
            metadata=kwargs.get("metadata", {}),
        )
        state.intents[intent_id] = intent
        return intent

    def retrieve_intent(intent_id, **kwargs):
        if intent_id not in state.intents:
            raise stripe.error.InvalidRequestError(
                "No such payment_intent", "intent", code="resource_missing"
            )
        return state.intents[intent_id]

    def cancel_intent(intent_id, **kwargs):
        state.cancelled.append(intent_id)
        if intent_id in state.intents:
            state.intents[intent_id].status = "canceled"
        return state.intents.get(intent_id)

    def create_customer(**kwargs):
        customer = SimpleNamespace(id=f"cus_test_{next(counter)}")
        state.customers.append(customer.id)
        return customer

    def retrieve_customer(customer_id, **kwargs):
        return SimpleNamespace(id=customer_id)

    def create_refund(**kwargs):
        state.refunds.append(kwargs)
        return SimpleNamespace(id=f"re_test_{next(counter)}", amount=kwargs.get("amount"))

    monkeypatch.setattr(stripe.PaymentIntent, "create", create_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve_intent)
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", cancel_intent)
    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.Customer, "retrieve", retrieve_customer)
    monkeypatch.setattr(stripe.Refund, "create", create_refund)
    return state


@pytest.fixture
def stripe_refuses_cancel(monkeypatch, fake_stripe):
    """
    Make PaymentIntent.cancel fail the way Stripe does once an intent has moved on.

    The optional ``on_cancel`` callback runs before the refusal and stands in
    for a webhook that was processed while the cancel request was in flight.
    """

    def _install(on_cancel: Callable[[str], None] | None = None) -> None:
        def cancel_intent(intent_id, **kwargs):
            fake_stripe.cancelled.append(intent_id)
            if on_cancel is not None:
                on_cancel(intent_id)
            raise stripe.error.InvalidRequestError(
                "This PaymentIntent's status is succeeded.",
                "intent",
                code="payment_intent_unexpected_state",
            )

        monkeypatch.setattr(stripe.PaymentIntent, "cancel", cancel_intent)

    return _install


def capture_payment(intent_id: str) -> None:
    """Apply a payment_intent.succeeded event for ``intent_id``."""
    from django.db import transaction

    from payments.models import Payment
    from payments.stripe_api import _handle_intent_succeeded

    with transaction.atomic():
        payment = (
            Payment.objects.select_for_update()
            .select_related("booking")
            .get(stripe_payment_intent_id=intent_id)
        )
        _handle_intent_succeeded(payment, {"id": intent_id})
