"""Django ORM implementation of the Ledger repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db.models import QuerySet

from modules.ledger.client import LedgerReceipt
from modules.ledger.models import LedgerRecord
from modules.ledger.repositories.interfaces import ILedgerRepository
from modules.orders.models import Order
from modules.payments.models import PaymentReference


class LedgerDjangoRepository(ILedgerRepository):
    def get_by_id(self, id: str) -> Optional[LedgerRecord]:
        try:
            return LedgerRecord.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_order(self, order_id: UUID) -> Optional[LedgerRecord]:
        try:
            return LedgerRecord.objects.filter(order_id=order_id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = LedgerRecord.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: LedgerRecord) -> LedgerRecord:
        entity.save()
        return entity

    def create_record(
        self, order_id: UUID, fingerprint: str, receipt: LedgerReceipt
    ) -> LedgerRecord:
        record = LedgerRecord(
            order_id=order_id,
            fingerprint=fingerprint,
            external_reference=receipt.external_reference,
            block_number=receipt.block_number,
            confirmed_at=receipt.confirmed_at,
        )
        record.save()
        return record

    def payment_reference_for(self, order_id: UUID) -> Optional[str]:
        return (
            PaymentReference.objects.filter(order_id=order_id, used_at__isnull=False)
            .order_by("-used_at")
            .values_list("reference", flat=True)
            .first()
        )

    def awaiting_anchor(self, limit: int) -> List[UUID]:
        return list(
            Order.objects.awaiting_anchor()
            .order_by("updated_at")
            .values_list("id", flat=True)[:limit]
        )
