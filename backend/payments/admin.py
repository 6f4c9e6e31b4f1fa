from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "payer", "payee", "amount_cents", "currency", "status")
    list_filter = ("status", "currency")
    search_fields = ("stripe_payment_intent_id", "payer__username", "payee__username")
    raw_id_fields = ("booking", "payer", "payee")
    readonly_fields = ("stripe_payment_intent_id", "created_at", "updated_at")
