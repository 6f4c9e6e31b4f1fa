"""Payment API endpoints for drivers and hosts."""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from bookings.models import Booking

from .models import Payment
from .serializers import PaymentIntentRequestSerializer, PaymentSerializer, RefundRequestSerializer
from .services import payments_for_user, refund_payment
from .stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    create_booking_payment_intent,
)

logger = logging.getLogger(__name__)


def _stripe_error_response(exc: Exception, *, context: str) -> Response:
    if isinstance(exc, StripeTransientError):
        return Response(
            {"detail": "Temporary payment issue; please retry."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    if isinstance(exc, StripeConfigurationError):
        logger.exception("Stripe configuration error while %s", context)
        return Response(
            {"detail": "Payment processor is not configured; please try again later."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return Response(
        {"detail": str(exc) or "Payment could not be completed."},
        status=status.HTTP_400_BAD_REQUEST,
    )


class PaymentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Read payments, start a booking charge and refund completed charges."""

    serializer_class = PaymentSerializer
    permission_classes = (permissions.IsAuthenticated,)

    def get_queryset(self):
        user = self.request.user
        if getattr(self, "action", None) == "list":
            return payments_for_user(user, role=self.request.query_params.get("role"))
        return Payment.objects.select_related(
            "booking", "booking__listing", "payer", "payee"
        ).filter(Q(payer=user) | Q(payee=user))

    @action(detail=False, methods=["post"], url_path="intents")
    def intents(self, request, *args, **kwargs):
        """Create (or reuse) the Stripe PaymentIntent for a pending booking."""
        serializer = PaymentIntentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = get_object_or_404(
            Booking.objects.filter(driver=request.user),
            pk=serializer.validated_data["booking"],
        )
        try:
            payload = create_booking_payment_intent(booking, payer=request.user)
        except ValidationError as exc:
            return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
        except (StripeTransientError, StripeConfigurationError, StripePaymentError) as exc:
            return _stripe_error_response(exc, context=f"creating intent for booking {booking.id}")
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="refund")
    def refund(self, request, *args, **kwargs):
        """Refund a completed payment in full or in part."""
        payment: Payment = self.get_object()
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payment = refund_payment(
                payment,
                actor=request.user,
                amount_cents=serializer.validated_data.get("amount_cents"),
                cancel_reason=(serializer.validated_data.get("reason") or "").strip() or None,
            )
        except ValidationError as exc:
            return Response(exc.message_dict, status=status.HTTP_400_BAD_REQUEST)
        except (StripeTransientError, StripeConfigurationError, StripePaymentError) as exc:
            return _stripe_error_response(exc, context=f"refunding payment {payment.id}")
        return Response(self.get_serializer(payment).data)
