from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api import PaymentViewSet
from .stripe_api import stripe_webhook

app_name = "payments"

router = DefaultRouter()
router.register("", PaymentViewSet, basename="payment")

urlpatterns = [
    path("stripe/webhook/", stripe_webhook, name="stripe_webhook"),
    path("", include(router.urls)),
]
