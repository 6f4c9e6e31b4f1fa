import pytest
import stripe
from django.core.exceptions import PermissionDenied, ValidationError
from rest_framework.test import APIClient

from bookings.models import Booking
from payments import stripe_api
from payments.models import Payment

pytestmark = pytest.mark.django_db


def auth(user):
    client = APIClient()
    token_resp = client.post(
        "/api/users/token/",
        {"username": user.username, "password": "testpass"},
        format="json",
    )
    token = token_resp.data["access"]
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


def test_intent_created_server_side(booking_factory, driver_user, fake_stripe):
    booking = booking_factory()

    payload = stripe_api.create_booking_payment_intent(booking, payer=driver_user)

    payment = Payment.objects.get(pk=payload["payment_id"])
    assert payload["amount_cents"] == 1000
    assert payload["currency"] == "usd"
    assert payload["publishable_key"] == "pk_test_dummy"
    assert payload["client_secret"] == f"{payload['payment_intent_id']}_secret_test"
    assert payment.status == Payment.Status.PENDING
    assert payment.stripe_payment_intent_id == payload["payment_intent_id"]
    assert payment.payee_id == booking.host_id

    call = fake_stripe.create_calls[0]
    assert call["amount"] == 1000
    assert call["metadata"]["booking_id"] == str(booking.id)
    assert call["idempotency_key"].startswith(f"payment:{payment.id}:")

    driver_user.refresh_from_db()
    assert driver_user.stripe_customer_id == call["customer"]


def test_intent_reused_on_retry(booking_factory, driver_user, fake_stripe):
    booking = booking_factory()

    first = stripe_api.create_booking_payment_intent(booking, payer=driver_user)
    second = stripe_api.create_booking_payment_intent(booking, payer=driver_user)

    assert first["payment_intent_id"] == second["payment_intent_id"]
    assert len(fake_stripe.create_calls) == 1
    assert Payment.objects.filter(booking=booking).count() == 1


def test_cancelled_intent_is_replaced(booking_factory, driver_user, fake_stripe):
    booking = booking_factory()
    first = stripe_api.create_booking_payment_intent(booking, payer=driver_user)
    fake_stripe.intents[first["payment_intent_id"]].status = "canceled"

    second = stripe_api.create_booking_payment_intent(booking, payer=driver_user)

    assert second["payment_intent_id"] != first["payment_intent_id"]
    assert second["payment_id"] == first["payment_id"]
    assert fake_stripe.create_calls[1]["idempotency_key"].endswith(
        f":after:{first['payment_intent_id']}"
    )


def test_only_driver_can_pay(booking_factory, host_user, fake_stripe):
    booking = booking_factory()

    with pytest.raises(PermissionDenied):
        stripe_api.create_booking_payment_intent(booking, payer=host_user)


def test_only_pending_bookings_can_be_paid(booking_factory, driver_user, fake_stripe):
    booking = booking_factory(status=Booking.Status.CONFIRMED)

    with pytest.raises(ValidationError):
        stripe_api.create_booking_payment_intent(booking, payer=driver_user)


def test_missing_secret_key_is_configuration_error(settings, booking_factory, driver_user):
    settings.STRIPE_SECRET_KEY = ""
    booking = booking_factory()

    with pytest.raises(stripe_api.StripeConfigurationError):
        stripe_api.create_booking_payment_intent(booking, payer=driver_user)


@pytest.mark.parametrize(
    "code,message",
    [
        ("card_declined", "Your card was declined. Please try a different payment method."),
        ("insufficient_funds", "Insufficient funds. Please try a different payment method."),
        ("expired_card", "Your card has expired. Please use a different card."),
        ("incorrect_cvc", "Your card's security code is incorrect."),
        ("processing_error", "An error occurred while processing your card. Please try again."),
        ("something_else", "Payment failed. Please try again."),
    ],
)
def test_card_errors_map_to_messages(code, message):
    exc = stripe.error.CardError("declined", None, code)

    with pytest.raises(stripe_api.StripePaymentError) as raised:
        stripe_api._handle_stripe_error(exc)

    assert str(raised.value) == message
    assert stripe_api.card_error_message(code) == message


def test_rate_limit_is_transient():
    with pytest.raises(stripe_api.StripeTransientError):
        stripe_api._handle_stripe_error(stripe.error.RateLimitError("slow down"))


def test_intents_endpoint(booking_factory, driver_user, fake_stripe):
    booking = booking_factory()

    resp = auth(driver_user).post("/api/payments/intents/", {"booking": booking.id}, format="json")

    assert resp.status_code == 201, resp.data
    assert resp.data["amount_cents"] == 1000
    assert "client_secret" in resp.data


def test_intents_endpoint_hides_other_drivers_bookings(booking_factory, other_driver, fake_stripe):
    booking = booking_factory()

    resp = auth(other_driver).post("/api/payments/intents/", {"booking": booking.id}, format="json")

    assert resp.status_code == 404


def test_intents_endpoint_reports_transient_errors(
    booking_factory, driver_user, fake_stripe, monkeypatch
):
    def _down(**kwargs):
        raise stripe.error.APIConnectionError("network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", _down)
    booking = booking_factory()

    resp = auth(driver_user).post("/api/payments/intents/", {"booking": booking.id}, format="json")

    assert resp.status_code == 503


def test_payment_list_and_detail(booking_factory, driver_user, host_user, other_driver):
    booking = booking_factory()
    payment = Payment.objects.create(
        booking=booking,
        payer=driver_user,
        payee=host_user,
        amount_cents=1000,
        stripe_payment_intent_id="pi_listed",
    )

    payer_list = auth(driver_user).get("/api/payments/")
    assert [item["id"] for item in payer_list.data["results"]] == [payment.id]

    host_default = auth(host_user).get("/api/payments/")
    assert host_default.data["results"] == []
    host_list = auth(host_user).get("/api/payments/", {"role": "host"})
    assert [item["id"] for item in host_list.data["results"]] == [payment.id]

    assert auth(host_user).get(f"/api/payments/{payment.id}/").status_code == 200
    assert auth(other_driver).get(f"/api/payments/{payment.id}/").status_code == 404


def test_concurrent_first_payment_reuses_existing_row(
    booking_factory, driver_user, fake_stripe, monkeypatch
):
    booking = booking_factory()
    real_lookup = stripe_api._live_payment
    inserted = []

    def lookup_then_competing_insert(locked_booking):
        if not inserted:
            inserted.append(
                Payment.objects.create(
                    booking=locked_booking,
                    payer=driver_user,
                    payee_id=locked_booking.host_id,
                    amount_cents=1000,
                    currency="usd",
                )
            )
            return None
        return real_lookup(locked_booking)

    monkeypatch.setattr(stripe_api, "_live_payment", lookup_then_competing_insert)

    payload = stripe_api.create_booking_payment_intent(booking, payer=driver_user)

    competing = inserted[0]
    competing.refresh_from_db()
    assert payload["payment_id"] == competing.id
    assert competing.stripe_payment_intent_id == payload["payment_intent_id"]
    assert Payment.objects.filter(booking=booking).count() == 1
    assert len(fake_stripe.create_calls) == 1
