import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="LicensePlateVerification",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("license_plate", models.CharField(max_length=16)),
                ("license_plate_state", models.CharField(max_length=2)),
                (
                    "verification_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending Verification"),
                            ("verified", "Verified"),
                            ("failed", "Verification Failed"),
                            ("disputed", "Disputed"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "verified_by",
                    models.CharField(
                        choices=[
                            ("host", "Host"),
                            ("driver", "Driver"),
                            ("system", "System"),
                            ("admin", "Admin"),
                        ],
                        default="system",
                        max_length=16,
                    ),
                ),
                (
                    "verification_method",
                    models.CharField(
                        choices=[
                            ("manual", "Manual"),
                            ("automatic", "Automatic"),
                            ("photo", "Photo"),
                            ("qr_code", "QR code"),
                        ],
                        default="automatic",
                        max_length=16,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("verification_notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="plate_verification",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
