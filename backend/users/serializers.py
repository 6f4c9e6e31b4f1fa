from __future__ import annotations

import logging
import re
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .models import LicensePlate

User = get_user_model()
PHONE_CLEAN_RE = re.compile(r"\D+")

logger = logging.getLogger(__name__)


def normalize_phone(raw_phone: Optional[str]) -> Optional[str]:
    """
    Return a best-effort E.164 number.

    Numbers containing exactly 10 digits default to +1; everything else must include
    an explicit country code (e.g., +44...).
    """
    if not raw_phone:
        return None

    stripped = raw_phone.strip()
    if not stripped:
        raise serializers.ValidationError("Enter a phone number.")

    digits = PHONE_CLEAN_RE.sub("", stripped)
    if not digits:
        raise serializers.ValidationError("Enter a phone number.")

    if stripped.startswith("+"):
        normalized = f"+{digits}"
    elif len(digits) == 10:
        normalized = f"+1{digits}"
    else:
        raise serializers.ValidationError("Include country code (e.g. +1...).")

    if len(normalized) < 11 or len(normalized) > 17:
        raise serializers.ValidationError("Enter a valid phone number.")
    return normalized


class LicensePlateSerializer(serializers.ModelSerializer):
    class Meta:
        model = LicensePlate
        fields = ["id", "plate_number", "state", "is_default", "created_at"]
        read_only_fields = ["id", "is_default", "created_at"]


class ProfileSerializer(serializers.ModelSerializer):
    """Profile of the authenticated user, including registered plates."""

    license_plates = LicensePlateSerializer(many=True, read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "phone",
            "role",
            "license_plates",
        ]
        read_only_fields = ["id", "username", "role", "license_plates"]

    def validate_phone(self, value):
        return normalize_phone(value)


class SignupSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "password", "first_name", "last_name", "phone", "role"]
        read_only_fields = ["id"]

    def validate_phone(self, value):
        return normalize_phone(value)

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        password = validated_data.pop("password")
        user = User(**validated_data)
        user.set_password(password)
        user.save()
        logger.info("users: signup", extra={"user_id": user.id, "role": user.role})
        return user
