"""License plate registration on a user's profile.

Every mutation locks the owning user row before reading plates, so exactly
one plate stays marked as default whenever the user has any plates at all.
"""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from verifications.formats import normalize_plate, normalize_state, validate_plate_format

from .models import LicensePlate, User

logger = logging.getLogger(__name__)


def _locked_plates(user: User):
    # The user row serializes mutations even when they have no plates yet.
    User.objects.select_for_update().get(pk=user.pk)
    return LicensePlate.objects.select_for_update().filter(user=user).order_by("created_at", "id")


def get_default_license_plate(user: User) -> LicensePlate | None:
    return LicensePlate.objects.filter(user=user, is_default=True).first()


def add_license_plate(user: User, plate_number: str, state: str) -> LicensePlate:
    """Register a plate; the user's first plate becomes the default."""
    result = validate_plate_format(plate_number, state)
    if not result.success:
        raise ValidationError({"plate_number": [result.message]})

    clean_plate = normalize_plate(plate_number)
    clean_state = normalize_state(state)

    with transaction.atomic():
        plates = list(_locked_plates(user))
        if any(p.plate_number == clean_plate and p.state == clean_state for p in plates):
            raise ValidationError(
                {"plate_number": ["This license plate is already registered."]}
            )
        plate = LicensePlate.objects.create(
            user=user,
            plate_number=clean_plate,
            state=clean_state,
            is_default=not plates,
        )

    logger.info(
        "users: license plate added",
        extra={"user_id": user.id, "plate_id": plate.id},
    )
    return plate


def remove_license_plate(user: User, plate_id: int) -> None:
    """Delete a plate, promoting the oldest remaining plate if the default went away."""
    with transaction.atomic():
        plates = list(_locked_plates(user))
        target = next((p for p in plates if p.id == plate_id), None)
        if target is None:
            raise LicensePlate.DoesNotExist(f"License plate {plate_id} not found.")
        was_default = target.is_default
        target.delete()

        remaining = [p for p in plates if p.id != plate_id]
        if was_default and remaining:
            promoted = remaining[0]
            promoted.is_default = True
            promoted.save(update_fields=["is_default"])


def set_default_license_plate(user: User, plate_id: int) -> LicensePlate:
    with transaction.atomic():
        plates = list(_locked_plates(user))
        target = next((p for p in plates if p.id == plate_id), None)
        if target is None:
            raise LicensePlate.DoesNotExist(f"License plate {plate_id} not found.")
        LicensePlate.objects.filter(user=user).exclude(pk=target.pk).update(is_default=False)
        if not target.is_default:
            target.is_default = True
            target.save(update_fields=["is_default"])
    return target
