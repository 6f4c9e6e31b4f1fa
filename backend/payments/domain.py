"""Payment status transitions."""

from __future__ import annotations

import logging

from django.db import transaction

from core.state_machine import assert_transition

from .models import Payment

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS = {
    Payment.Status.PENDING: frozenset(
        {Payment.Status.PROCESSING, Payment.Status.COMPLETED, Payment.Status.FAILED}
    ),
    Payment.Status.PROCESSING: frozenset({Payment.Status.COMPLETED, Payment.Status.FAILED}),
    # A failed intent can be retried with another payment method.
    Payment.Status.FAILED: frozenset({Payment.Status.PROCESSING, Payment.Status.COMPLETED}),
    Payment.Status.COMPLETED: frozenset({Payment.Status.REFUNDED}),
}


def transition_payment(payment: Payment, target: str, **changes) -> None:
    """
    Move the payment to ``target`` and persist any extra field changes.

    The check runs against the locked database row, so a caller holding a
    stale copy cannot overwrite a status another worker already moved on.
    """
    with transaction.atomic():
        current = (
            Payment.objects.select_for_update()
            .values_list("status", flat=True)
            .get(pk=payment.pk)
        )
        assert_transition(PAYMENT_TRANSITIONS, current, target, label="payment")
        payment.status = target
        for field, value in changes.items():
            setattr(payment, field, value)
        payment.save(update_fields=["status", *changes.keys(), "updated_at"])
    logger.info(
        "payments: status changed",
        extra={"payment_id": payment.id, "from": current, "to": target},
    )
