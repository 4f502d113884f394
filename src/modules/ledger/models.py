"""Ledger anchoring records.

A ``LedgerRecord`` exists only for a confirmed submission; a failed
submission leaves no row.  The one-to-one link to the order is the durable
guard against anchoring an order twice.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import AppendOnlyModel


class LedgerRecord(AppendOnlyModel):
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="ledger_record",
    )
    fingerprint = models.CharField(max_length=64)
    external_reference = models.CharField(max_length=255)
    block_number = models.BigIntegerField(null=True, blank=True)
    confirmed_at = models.DateTimeField()

    class Meta:
        db_table = "ledger_records"
        ordering = ["-confirmed_at"]

    def __str__(self) -> str:
        return f"{self.order_id} @ {self.external_reference}"
