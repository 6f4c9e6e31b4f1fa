import pytest
import stripe
from django.core import mail
from rest_framework.test import APIRequestFactory

from bookings.models import Booking
from notifications.models import NotificationLog
from payments.models import Payment
from payments.stripe_api import stripe_webhook

pytestmark = pytest.mark.django_db


@pytest.fixture
def payment(booking_factory, driver_user, host_user):
    booking = booking_factory()
    return Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee=host_user,
        amount_cents=1000,
        stripe_payment_intent_id="pi_hook",
    )


def _deliver(monkeypatch, event_payload):
    monkeypatch.setattr(
        stripe.Webhook,
        "construct_event",
        lambda payload, sig_header, secret: event_payload,
    )
    factory = APIRequestFactory()
    request = factory.post(
        "/api/payments/stripe/webhook/",
        data={},
        format="json",
        HTTP_STRIPE_SIGNATURE="t=1,v1=test",
    )
    return stripe_webhook(request)


def _intent_event(event_type, intent_id="pi_hook", **extra):
    return {"type": event_type, "data": {"object": {"id": intent_id, **extra}}}


def test_succeeded_confirms_booking(monkeypatch, payment, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        response = _deliver(
            monkeypatch,
            _intent_event("payment_intent.succeeded", payment_method="pm_card_visa"),
        )

    assert response.status_code == 200
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert payment.payment_method_id == "pm_card_visa"
    payment.booking.refresh_from_db()
    assert payment.booking.status == Booking.Status.CONFIRMED

    subjects = sorted(message.subject for message in mail.outbox)
    assert subjects == [
        "Your booking for Covered Driveway was confirmed",
        "Your parking payment receipt",
    ]
    assert NotificationLog.objects.filter(type="receipt", status="sent").count() == 1


def test_succeeded_is_idempotent(monkeypatch, payment, django_capture_on_commit_callbacks):
    event = _intent_event("payment_intent.succeeded")
    with django_capture_on_commit_callbacks(execute=True):
        _deliver(monkeypatch, event)
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        response = _deliver(monkeypatch, event)

    assert response.status_code == 200
    assert callbacks == []
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert len(mail.outbox) == 2


def test_payment_matched_by_metadata(monkeypatch, payment):
    event = _intent_event(
        "payment_intent.processing",
        intent_id="pi_unknown",
        metadata={"payment_id": str(payment.id)},
    )

    response = _deliver(monkeypatch, event)

    assert response.status_code == 200
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PROCESSING


def test_failed_records_user_message(monkeypatch, payment):
    event = _intent_event(
        "payment_intent.payment_failed",
        last_payment_error={"code": "card_declined", "decline_code": "insufficient_funds"},
    )

    response = _deliver(monkeypatch, event)

    assert response.status_code == 200
    payment.refresh_from_db()
    assert payment.status == Payment.Status.FAILED
    assert payment.failure_code == "insufficient_funds"
    assert payment.failure_message == "Insufficient funds. Please try a different payment method."
    payment.booking.refresh_from_db()
    assert payment.booking.status == Booking.Status.PENDING


def test_failed_does_not_undo_success(monkeypatch, payment):
    _deliver(monkeypatch, _intent_event("payment_intent.succeeded"))

    _deliver(
        monkeypatch,
        _intent_event("payment_intent.payment_failed", last_payment_error={"code": "expired_card"}),
    )

    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert payment.failure_code == ""


def test_retry_after_failure_can_succeed(monkeypatch, payment):
    _deliver(
        monkeypatch,
        _intent_event("payment_intent.payment_failed", last_payment_error={"code": "card_declined"}),
    )
    _deliver(monkeypatch, _intent_event("payment_intent.succeeded"))

    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert payment.failure_message == ""


def test_success_for_cancelled_booking_is_refunded(monkeypatch, payment, fake_stripe):
    booking = payment.booking
    booking.status = Booking.Status.CANCELLED
    booking.save(update_fields=["status"])

    response = _deliver(monkeypatch, _intent_event("payment_intent.succeeded"))

    assert response.status_code == 200
    assert fake_stripe.refunds[0]["payment_intent"] == "pi_hook"
    assert fake_stripe.refunds[0]["amount"] == 1000
    payment.refresh_from_db()
    assert payment.status == Payment.Status.REFUNDED
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED


def test_charge_refunded_partial_then_full(monkeypatch, payment):
    _deliver(monkeypatch, _intent_event("payment_intent.succeeded"))

    _deliver(
        monkeypatch,
        {"type": "charge.refunded", "data": {"object": {"payment_intent": "pi_hook", "amount_refunded": 400}}},
    )
    payment.refresh_from_db()
    assert payment.status == Payment.Status.COMPLETED
    assert payment.refunded_amount_cents == 400

    _deliver(
        monkeypatch,
        {"type": "charge.refunded", "data": {"object": {"payment_intent": "pi_hook", "amount_refunded": 1000}}},
    )
    payment.refresh_from_db()
    assert payment.status == Payment.Status.REFUNDED
    assert payment.refunded_at is not None
    booking = payment.booking
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED
    assert booking.cancelled_by == "system"
    assert booking.auto_cancelled is True


def test_unknown_event_is_acknowledged(monkeypatch, payment):
    response = _deliver(monkeypatch, {"type": "customer.created", "data": {"object": {}}})

    assert response.status_code == 200
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_bad_signature_is_rejected(monkeypatch, payment):
    def _reject(payload, sig_header, secret):
        raise stripe.error.SignatureVerificationError("bad signature", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", _reject)
    request = APIRequestFactory().post("/api/payments/stripe/webhook/", data={}, format="json")

    response = stripe_webhook(request)

    assert response.status_code == 400
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING


def test_missing_webhook_secret(settings, monkeypatch, payment):
    settings.STRIPE_WEBHOOK_SECRET = ""

    response = _deliver(monkeypatch, _intent_event("payment_intent.succeeded"))

    assert response.status_code == 503
    payment.refresh_from_db()
    assert payment.status == Payment.Status.PENDING
