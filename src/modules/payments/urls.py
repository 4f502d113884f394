"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import (
    create_payment_reference,
    gateway_webhook,
    payment_status,
    reconciliation_queue,
)

urlpatterns = [
    path("payments/webhook/", gateway_webhook, name="payment-webhook"),
    path("payments/reconciliation/", reconciliation_queue, name="payment-reconciliation"),
    path(
        "payments/orders/<uuid:order_id>/status/",
        payment_status,
        name="payment-status",
    ),
    path(
        "orders/<uuid:order_id>/payment-reference/",
        create_payment_reference,
        name="payment-reference",
    ),
]
