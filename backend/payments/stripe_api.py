"""Stripe payment helpers for booking charges, refunds and webhooks."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from bookings.domain import mark_cancelled, transition_booking
from bookings.models import Booking
from notifications import tasks as notification_tasks

from .domain import transition_payment
from .models import Payment

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
AUTOMATIC_PAYMENT_METHODS_CONFIG = {"enabled": True}
User = get_user_model()

CARD_ERROR_MESSAGES = {
    "card_declined": "Your card was declined. Please try a different payment method.",
    "insufficient_funds": "Insufficient funds. Please try a different payment method.",
    "expired_card": "Your card has expired. Please use a different card.",
    "incorrect_cvc": "Your card's security code is incorrect.",
    "processing_error": "An error occurred while processing your card. Please try again.",
}
DEFAULT_CARD_ERROR_MESSAGE = "Payment failed. Please try again."
REFUNDED_REASON = "Payment refunded."


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent payment failure for a booking charge."""


def card_error_message(code: str | None) -> str:
    """Return the user-facing message for a Stripe card error code."""
    return CARD_ERROR_MESSAGES.get(code or "", DEFAULT_CARD_ERROR_MESSAGE)


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _get_publishable_key() -> str:
    publishable_key = getattr(settings, "STRIPE_PUBLISHABLE_KEY", "")
    if not publishable_key:
        raise StripeConfigurationError("Stripe publishable key not configured.")
    return publishable_key


def _to_cents(amount: Decimal) -> int:
    """Convert Decimal dollars to integer cents, rounding to the nearest cent."""
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _handle_stripe_error(exc: stripe.error.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.error.CardError):
        code = getattr(exc, "code", None)
        message = CARD_ERROR_MESSAGES.get(code or "") or exc.user_message
        raise StripePaymentError(message or DEFAULT_CARD_ERROR_MESSAGE) from exc
    if isinstance(
        exc,
        (
            stripe.error.RateLimitError,
            stripe.error.APIConnectionError,
            stripe.error.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.error.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def _retrieve_payment_intent(intent_id: str, *, label: str) -> stripe.PaymentIntent | None:
    """Retrieve an existing PaymentIntent, returning None if it no longer exists."""
    if not intent_id:
        return None
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.error.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info("Stripe PaymentIntent %s (%s) missing; will recreate.", label, intent_id)
            return None
        _handle_stripe_error(exc)
    except (
        stripe.error.RateLimitError,
        stripe.error.APIConnectionError,
        stripe.error.APIError,
    ) as exc:
        raise StripeTransientError(f"Temporary Stripe error retrieving {label} intent.") from exc
    return None


def ensure_stripe_customer(user: User) -> str:
    """
    Return an existing Stripe Customer ID for the user, creating one if necessary.
    """
    stripe.api_key = _get_stripe_api_key()
    candidate_id = (getattr(user, "stripe_customer_id", "") or "").strip()

    if candidate_id:
        try:
            stripe.Customer.retrieve(candidate_id)
        except stripe.error.InvalidRequestError:
            logger.info("Stripe customer %s missing; recreating.", candidate_id)
            candidate_id = ""
        except stripe.error.StripeError as exc:
            _handle_stripe_error(exc)

    if not candidate_id:
        try:
            customer = stripe.Customer.create(
                email=user.email or None,
                name=(user.get_full_name() or user.username or f"user-{user.id}"),
                metadata={"user_id": str(user.id)},
            )
        except stripe.error.StripeError as exc:
            _handle_stripe_error(exc)
        candidate_id = customer.id
        user.stripe_customer_id = candidate_id
        user.save(update_fields=["stripe_customer_id"])

    return candidate_id


def _live_payment(booking: Booking) -> Payment | None:
    return (
        booking.payments.filter(
            status__in=[
                Payment.Status.PENDING,
                Payment.Status.PROCESSING,
                Payment.Status.FAILED,
            ]
        )
        .order_by("-created_at")
        .first()
    )


def _open_payment_for(
    booking: Booking,
    *,
    payer: User,
    amount_cents: int,
    currency: str,
) -> Payment:
    """
    Return the booking's reusable Payment row, creating it if there is none.

    The booking row is locked so concurrent requests for the same booking
    take turns; a request that still loses the insert reuses the winner's row.
    """
    with transaction.atomic():
        locked = Booking.objects.select_for_update().get(pk=booking.pk)
        if locked.status != Booking.Status.PENDING:
            raise ValidationError({"booking": ["Only pending bookings can be paid."]})
        if locked.payments.filter(status=Payment.Status.COMPLETED).exists():
            raise ValidationError({"booking": ["This booking has already been paid."]})

        payment = _live_payment(locked)
        if payment is not None:
            return payment
        try:
            with transaction.atomic():
                return Payment.objects.create(
                    booking=locked,
                    payer=payer,
                    payee_id=locked.host_id,
                    amount_cents=amount_cents,
                    currency=currency,
                )
        except IntegrityError:
            logger.info(
                "payments: live payment created concurrently, reusing it",
                extra={"booking_id": locked.id},
            )
        payment = _live_payment(locked)
        if payment is None:
            raise ValidationError({"booking": ["This booking has already been paid."]})
        return payment


def create_booking_payment_intent(booking: Booking, *, payer: User) -> dict[str, Any]:
    """
    Create or reuse the PaymentIntent that pays for a pending booking.

    The intent is created server-side for the booking total, with an
    idempotency key scoped to the local Payment row so client retries reuse it.
    The returned client secret is handed to the caller and never persisted.
    """
    if payer.id != booking.driver_id:
        raise PermissionDenied("Only the driver can pay for this booking.")
    if booking.status != Booking.Status.PENDING:
        raise ValidationError({"booking": ["Only pending bookings can be paid."]})
    if booking.payments.filter(status=Payment.Status.COMPLETED).exists():
        raise ValidationError({"booking": ["This booking has already been paid."]})

    amount_cents = _to_cents(booking.total_price)
    if amount_cents <= 0:
        raise StripePaymentError("Booking total must be greater than zero.")

    stripe.api_key = _get_stripe_api_key()
    publishable_key = _get_publishable_key()
    currency = getattr(settings, "PAYMENT_CURRENCY", "usd") or "usd"

    payment = _open_payment_for(
        booking,
        payer=payer,
        amount_cents=amount_cents,
        currency=currency,
    )

    previous_intent_id = payment.stripe_payment_intent_id
    intent = _retrieve_payment_intent(previous_intent_id, label="booking_charge")
    if intent is not None and getattr(intent, "status", "") == "canceled":
        intent = None

    if intent is None:
        customer_id = ensure_stripe_customer(payer)
        idempotency_key = f"payment:{payment.id}:{IDEMPOTENCY_VERSION}:{amount_cents}"
        if previous_intent_id:
            idempotency_key = f"{idempotency_key}:after:{previous_intent_id}"
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                automatic_payment_methods={**AUTOMATIC_PAYMENT_METHODS_CONFIG},
                customer=customer_id,
                capture_method="automatic",
                metadata={
                    "booking_id": str(booking.id),
                    "payment_id": str(payment.id),
                    "listing_id": str(booking.listing_id),
                    "env": getattr(settings, "STRIPE_ENV", "dev") or "dev",
                    "kind": "booking_charge",
                },
                idempotency_key=idempotency_key,
            )
        except stripe.error.StripeError as exc:
            _handle_stripe_error(exc)

    if payment.stripe_payment_intent_id != intent.id:
        payment.stripe_payment_intent_id = intent.id
        payment.save(update_fields=["stripe_payment_intent_id", "updated_at"])

    logger.info(
        "payments: intent ready",
        extra={
            "payment_id": payment.id,
            "booking_id": booking.id,
            "payment_intent_id": intent.id,
            "amount_cents": amount_cents,
        },
    )
    return {
        "payment_id": payment.id,
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "publishable_key": publishable_key,
        "amount_cents": amount_cents,
        "currency": currency,
    }


def create_refund(payment: Payment, *, amount_cents: int) -> str:
    """Issue a Stripe refund against the payment's intent and return the refund id."""
    stripe.api_key = _get_stripe_api_key()
    try:
        refund = stripe.Refund.create(
            payment_intent=payment.stripe_payment_intent_id,
            amount=amount_cents,
            metadata={
                "booking_id": str(payment.booking_id),
                "payment_id": str(payment.id),
            },
            idempotency_key=(
                f"payment:{payment.id}:{IDEMPOTENCY_VERSION}:refund:"
                f"{payment.refunded_amount_cents}:{amount_cents}"
            ),
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return refund.id


def cancel_payment_intent(intent_id: str) -> bool:
    """
    Cancel an unpaid PaymentIntent.

    Returns False when Stripe refuses because the intent already moved on
    (succeeded or is processing); the charge may be captured. A missing intent
    has nothing left to charge and counts as cancelled.
    """
    if not intent_id:
        return True
    stripe.api_key = _get_stripe_api_key()
    try:
        stripe.PaymentIntent.cancel(intent_id)
    except stripe.error.InvalidRequestError as exc:
        code = getattr(exc, "code", "") or ""
        logger.info(
            "Stripe PaymentIntent %s could not be cancelled: %s",
            intent_id,
            code or exc,
        )
        return code == "resource_missing"
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return True


def _locked_payment_for_intent(data_object: dict[str, Any], intent_id: str) -> Payment | None:
    qs = Payment.objects.select_for_update().select_related("booking")
    payment = qs.filter(stripe_payment_intent_id=intent_id).first() if intent_id else None
    if payment is None:
        payment_id = (data_object.get("metadata") or {}).get("payment_id")
        try:
            payment = qs.filter(pk=int(payment_id)).first() if payment_id else None
        except (TypeError, ValueError):
            payment = None
    return payment


def _handle_intent_processing(payment: Payment, data_object: dict[str, Any]) -> None:
    if payment.status in {
        Payment.Status.PROCESSING,
        Payment.Status.COMPLETED,
        Payment.Status.REFUNDED,
    }:
        return
    transition_payment(payment, Payment.Status.PROCESSING)


def _handle_intent_succeeded(payment: Payment, data_object: dict[str, Any]) -> None:
    if payment.status in {Payment.Status.COMPLETED, Payment.Status.REFUNDED}:
        return
    transition_payment(
        payment,
        Payment.Status.COMPLETED,
        payment_method_id=data_object.get("payment_method") or payment.payment_method_id,
        failure_code="",
        failure_message="",
    )

    booking = Booking.objects.select_for_update().get(pk=payment.booking_id)
    if booking.status == Booking.Status.PENDING:
        transition_booking(booking, Booking.Status.CONFIRMED)
        transaction.on_commit(lambda: _queue_payment_emails(payment, booking))
    elif booking.status == Booking.Status.CANCELLED:
        # The booking lapsed while the driver was paying; return the money.
        logger.warning(
            "payments: charge succeeded for cancelled booking, refunding",
            extra={"payment_id": payment.id, "booking_id": booking.id},
        )
        from .services import refund_payment

        refund_payment(payment, actor=None)


def _handle_intent_failed(payment: Payment, data_object: dict[str, Any]) -> None:
    if payment.status in {
        Payment.Status.FAILED,
        Payment.Status.COMPLETED,
        Payment.Status.REFUNDED,
    }:
        return
    error = data_object.get("last_payment_error") or {}
    code = error.get("decline_code") or ""
    if code not in CARD_ERROR_MESSAGES:
        code = error.get("code") or code
    transition_payment(
        payment,
        Payment.Status.FAILED,
        failure_code=code[:64],
        failure_message=card_error_message(code),
    )


def _handle_charge_refunded(payment: Payment, data_object: dict[str, Any]) -> None:
    try:
        amount_refunded = int(data_object.get("amount_refunded") or 0)
    except (TypeError, ValueError):
        amount_refunded = 0
    if amount_refunded <= payment.refunded_amount_cents:
        return

    payment.refunded_amount_cents = min(amount_refunded, payment.amount_cents)
    if payment.refundable_cents == 0 and payment.status == Payment.Status.COMPLETED:
        transition_payment(
            payment,
            Payment.Status.REFUNDED,
            refunded_amount_cents=payment.refunded_amount_cents,
            refunded_at=timezone.now(),
        )
        booking = payment.booking
        if booking.is_active():
            mark_cancelled(booking, actor="system", auto=True, reason=REFUNDED_REASON)
    else:
        payment.save(update_fields=["refunded_amount_cents", "updated_at"])


INTENT_EVENT_HANDLERS = {
    "payment_intent.processing": _handle_intent_processing,
    "payment_intent.succeeded": _handle_intent_succeeded,
    "payment_intent.payment_failed": _handle_intent_failed,
    "charge.refunded": _handle_charge_refunded,
}


def _queue_payment_emails(payment: Payment, booking: Booking) -> None:
    try:
        notification_tasks.send_payment_receipt_email.delay(payment.payer_id, payment.id)
        notification_tasks.send_booking_status_email.delay(
            booking.driver_id,
            booking.id,
            booking.status,
        )
    except Exception:
        logger.info(
            "notifications: could not queue payment emails",
            extra={"payment_id": payment.id},
            exc_info=True,
        )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_webhook(request):
    """Handle Stripe webhook callbacks for booking PaymentIntents and refunds."""
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    if not endpoint_secret:
        logger.error("stripe_webhook: STRIPE_WEBHOOK_SECRET is not configured")
        return Response(status=status.HTTP_503_SERVICE_UNAVAILABLE)

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=endpoint_secret,
        )
    except ValueError:
        return Response(status=status.HTTP_400_BAD_REQUEST)
    except stripe.error.SignatureVerificationError:
        return Response(status=status.HTTP_400_BAD_REQUEST)

    event_type = event.get("type")
    handler = INTENT_EVENT_HANDLERS.get(event_type)
    if handler is None:
        return Response(status=status.HTTP_200_OK)

    data_object = event.get("data", {}).get("object", {}) or {}
    if event_type == "charge.refunded":
        intent_id = data_object.get("payment_intent") or ""
    else:
        intent_id = data_object.get("id") or ""

    with transaction.atomic():
        payment = _locked_payment_for_intent(data_object, intent_id)
        if payment is None:
            logger.info(
                "stripe_webhook: no payment for intent",
                extra={"event_type": event_type, "payment_intent_id": intent_id},
            )
            return Response(status=status.HTTP_200_OK)
        try:
            handler(payment, data_object)
        except ValidationError as exc:
            logger.warning(
                "stripe_webhook: ignored out-of-order event",
                extra={
                    "event_type": event_type,
                    "payment_id": payment.id,
                    "errors": exc.message_dict,
                },
            )

    return Response(status=status.HTTP_200_OK)
