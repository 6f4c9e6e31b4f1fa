"""Database models for parking bookings."""

from __future__ import annotations

from django.conf import settings
from django.db import models

from listings.models import Listing


class Booking(models.Model):
    """A driver's reservation of a [start_at, end_at) interval on a listing."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        CONFIRMED = "confirmed", "confirmed"
        CANCELLED = "cancelled", "cancelled"
        COMPLETED = "completed", "completed"

    listing = models.ForeignKey(
        Listing,
        related_name="bookings",
        on_delete=models.CASCADE,
    )
    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_host",
        on_delete=models.CASCADE,
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_driver",
        on_delete=models.CASCADE,
    )
    start_at = models.DateTimeField()
    end_at = models.DateTimeField(help_text="Exclusive end, must be after start_at.")
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    license_plate = models.CharField(max_length=16)
    license_plate_state = models.CharField(max_length=2)
    cancelled_by = models.CharField(max_length=16, blank=True, default="")
    cancelled_reason = models.TextField(blank=True, default="")
    auto_cancelled = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["listing", "start_at", "end_at"],
                name="booking_listing_window_idx",
            ),
            models.Index(fields=["driver", "status"], name="booking_driver_status_idx"),
            models.Index(fields=["host", "status"], name="booking_host_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(start_at__lt=models.F("end_at")),
                name="booking_start_before_end",
            ),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking #{self.pk} for {self.listing_id} ({self.status})"

    def is_active(self) -> bool:
        """Return True if the booking is pending or confirmed."""
        return self.status in {
            self.Status.PENDING,
            self.Status.CONFIRMED,
        }

    def is_participant(self, user) -> bool:
        user_id = getattr(user, "id", None)
        return user_id is not None and user_id in (self.host_id, self.driver_id)
