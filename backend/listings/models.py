from datetime import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models


class Listing(models.Model):
    """A parking space offered by a host at an hourly rate."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
    )
    title = models.CharField(max_length=140)
    description = models.TextField(blank=True)
    address = models.CharField(max_length=255)
    city = models.CharField(max_length=120, blank=True, default="")
    price_per_hour = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    available_from = models.TimeField(default=time(9, 0))
    available_to = models.TimeField(default=time(17, 0))
    images = models.JSONField(
        default=list,
        blank=True,
        help_text="Storage references or absolute URLs for listing photos.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_per_hour__gte=0),
                name="listing_price_non_negative",
            ),
        ]

    def clean(self):
        if not self.title or len(self.title.strip()) < 3:
            raise ValidationError("Title too short")
        if self.available_from and self.available_to and self.available_from >= self.available_to:
            raise ValidationError("Availability must start before it ends")

    def __str__(self) -> str:
        return f"{self.title} ({self.pk})"
