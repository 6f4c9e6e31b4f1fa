from django.apps import AppConfig


class VerificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "verifications"
