"""Payment references and the gateway-event deduplication table.

Business rules implemented:
- A ``PaymentReference`` (gateway ``tx_ref``) identifies one payment
  attempt for an order and is globally unique.
- ``GatewayEvent`` stores every callback received; the unique
  (reference, event_status) pair makes redelivered callbacks no-ops across
  restarts and across worker processes.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import REFERENCE_MAX_LENGTH, GatewayEventOutcome


class PaymentReference(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_references",
    )
    reference = models.CharField(max_length=REFERENCE_MAX_LENGTH, unique=True)
    used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "payment_references"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.reference


class GatewayEvent(BaseModel):
    reference = models.CharField(max_length=REFERENCE_MAX_LENGTH)
    event_status = models.CharField(max_length=30)
    transaction_id = models.CharField(max_length=255, blank=True, default="")
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payload = models.JSONField(default=dict)
    outcome = models.CharField(
        max_length=30,
        choices=GatewayEventOutcome.choices,
        null=True,
        blank=True,
    )
    error_message = models.TextField(blank=True, default="")

    class Meta:
        db_table = "payment_gateway_events"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["outcome"], name="pge_outcome_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["reference", "event_status"],
                name="pge_reference_status_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.reference}:{self.event_status} -> {self.outcome}"
