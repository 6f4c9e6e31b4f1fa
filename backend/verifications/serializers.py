from rest_framework import serializers

from .models import LicensePlateVerification


class LicensePlateVerificationSerializer(serializers.ModelSerializer):
    status_label = serializers.CharField(source="get_verification_status_display", read_only=True)

    class Meta:
        model = LicensePlateVerification
        fields = (
            "id",
            "booking",
            "license_plate",
            "license_plate_state",
            "verification_status",
            "status_label",
            "verified_by",
            "verification_method",
            "verified_at",
            "verification_notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class PlateInputSerializer(serializers.Serializer):
    license_plate = serializers.CharField(max_length=32)
    state = serializers.CharField(max_length=8)


class ManualVerificationSerializer(serializers.Serializer):
    is_verified = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class DisputeSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)
