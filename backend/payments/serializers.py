from rest_framework import serializers

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    listing_title = serializers.ReadOnlyField(source="booking.listing.title")
    payer_username = serializers.ReadOnlyField(source="payer.username")
    payee_username = serializers.ReadOnlyField(source="payee.username")

    class Meta:
        model = Payment
        fields = (
            "id",
            "booking",
            "listing_title",
            "payer",
            "payer_username",
            "payee",
            "payee_username",
            "amount_cents",
            "currency",
            "status",
            "stripe_payment_intent_id",
            "payment_method_id",
            "failure_code",
            "failure_message",
            "refunded_amount_cents",
            "refunded_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class PaymentIntentRequestSerializer(serializers.Serializer):
    booking = serializers.IntegerField(min_value=1)


class RefundRequestSerializer(serializers.Serializer):
    amount_cents = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)
