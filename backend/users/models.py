from __future__ import annotations

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Marketplace account: hosts list parking spaces, drivers book them."""

    class Role(models.TextChoices):
        HOST = "host", "Host"
        DRIVER = "driver", "Driver"

    role = models.CharField(
        max_length=16,
        choices=Role.choices,
        default=Role.DRIVER,
    )
    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    stripe_customer_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe Customer ID for driver payments.",
    )

    def is_host(self) -> bool:
        return self.role == self.Role.HOST

    def is_driver(self) -> bool:
        return self.role == self.Role.DRIVER


class LicensePlate(models.Model):
    """A vehicle plate registered on a driver's profile."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="license_plates",
    )
    plate_number = models.CharField(max_length=16)
    state = models.CharField(max_length=2)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "plate_number", "state"],
                name="unique_plate_per_user",
            ),
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(is_default=True),
                name="one_default_plate_per_user",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.plate_number} ({self.state})"
