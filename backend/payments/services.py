"""Refund and voiding operations on booking payments."""

from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from bookings.domain import actor_role, mark_cancelled
from bookings.models import Booking
from users.models import User

from .domain import transition_payment
from .models import Payment
from .stripe_api import REFUNDED_REASON, cancel_payment_intent, create_refund

logger = logging.getLogger(__name__)


def payments_for_user(user: User, *, role: str | None = None) -> QuerySet[Payment]:
    """Payments the user made, or received when ``role`` is ``"host"``."""
    qs = Payment.objects.select_related("booking", "booking__listing", "payer", "payee")
    if role == "host":
        return qs.filter(payee=user).order_by("-created_at")
    return qs.filter(payer=user).order_by("-created_at")


def refund_payment(
    payment: Payment,
    *,
    actor: User | None,
    amount_cents: int | None = None,
    cancel_reason: str | None = None,
) -> Payment:
    """
    Refund a completed payment in full or in part.

    ``actor`` must be the payer or the payee; ``None`` means the platform is
    refunding on its own. A full refund cancels the booking if it still holds
    its slot.
    """
    if actor is not None and actor.id not in (payment.payer_id, payment.payee_id):
        raise PermissionDenied("Only the payer or payee can refund this payment.")
    if payment.status != Payment.Status.COMPLETED:
        raise ValidationError({"status": ["Only completed payments can be refunded."]})

    remaining = payment.refundable_cents
    amount = remaining if amount_cents is None else amount_cents
    if amount <= 0 or amount > remaining:
        raise ValidationError(
            {"amount_cents": [f"Refund amount must be between 1 and {remaining} cents."]}
        )

    refund_id = create_refund(payment, amount_cents=amount)

    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related("booking").get(pk=payment.pk)
        refunded_total = min(payment.refunded_amount_cents + amount, payment.amount_cents)
        if refunded_total >= payment.amount_cents and payment.status == Payment.Status.COMPLETED:
            transition_payment(
                payment,
                Payment.Status.REFUNDED,
                refunded_amount_cents=refunded_total,
                refunded_at=timezone.now(),
            )
            booking = payment.booking
            if booking.is_active():
                role = actor_role(booking, actor) if actor is not None else "system"
                mark_cancelled(
                    booking,
                    actor=role,
                    auto=actor is None,
                    reason=cancel_reason or REFUNDED_REASON,
                )
        else:
            payment.refunded_amount_cents = refunded_total
            payment.save(update_fields=["refunded_amount_cents", "updated_at"])

    logger.info(
        "payments: refunded",
        extra={
            "payment_id": payment.id,
            "refund_id": refund_id,
            "amount_cents": amount,
            "actor_id": getattr(actor, "id", None),
        },
    )
    return payment


def void_open_payments(booking: Booking) -> bool:
    """
    Cancel unpaid intents for the booking and mark their pending payments failed.

    Returns False when any payment could not be voided: Stripe refused to
    cancel its intent, or a webhook moved it on while the cancel was in
    flight. Such payments are left untouched so the captured charge stays
    recorded; the caller must not assume the booking is unpaid.
    """
    all_voided = True
    open_payments = list(
        booking.payments.filter(
            status__in=[Payment.Status.PENDING, Payment.Status.FAILED]
        ).values_list("id", "stripe_payment_intent_id")
    )
    for payment_id, intent_id in open_payments:
        if not cancel_payment_intent(intent_id):
            all_voided = False
            continue
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            if payment.status == Payment.Status.PENDING:
                transition_payment(
                    payment,
                    Payment.Status.FAILED,
                    failure_code="canceled",
                    failure_message="Booking was cancelled before payment.",
                )
            elif payment.status != Payment.Status.FAILED:
                all_voided = False
                logger.warning(
                    "payments: payment settled while its intent was voided",
                    extra={"payment_id": payment.id, "status": payment.status},
                )
    return all_voided
