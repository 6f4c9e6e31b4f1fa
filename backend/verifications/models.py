from django.db import models


class LicensePlateVerification(models.Model):
    """Outcome of checking the vehicle parked against the plate on a booking."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending Verification"
        VERIFIED = "verified", "Verified"
        FAILED = "failed", "Verification Failed"
        DISPUTED = "disputed", "Disputed"

    class VerifiedBy(models.TextChoices):
        HOST = "host", "Host"
        DRIVER = "driver", "Driver"
        SYSTEM = "system", "System"
        ADMIN = "admin", "Admin"

    class Method(models.TextChoices):
        MANUAL = "manual", "Manual"
        AUTOMATIC = "automatic", "Automatic"
        PHOTO = "photo", "Photo"
        QR_CODE = "qr_code", "QR code"

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="plate_verification",
    )
    license_plate = models.CharField(max_length=16)
    license_plate_state = models.CharField(max_length=2)
    verification_status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    verified_by = models.CharField(
        max_length=16,
        choices=VerifiedBy.choices,
        default=VerifiedBy.SYSTEM,
    )
    verification_method = models.CharField(
        max_length=16,
        choices=Method.choices,
        default=Method.AUTOMATIC,
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    verification_notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Plate check for booking {self.booking_id}: {self.verification_status}"
