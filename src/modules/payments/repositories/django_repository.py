"""Django ORM implementation of the Payment repository."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from django.db.models import QuerySet
from django.utils import timezone

from modules.payments.constants import GatewayEventOutcome
from modules.payments.dtos import GatewayEventDTO
from modules.payments.models import GatewayEvent, PaymentReference
from modules.payments.repositories.interfaces import IPaymentRepository


class PaymentDjangoRepository(IPaymentRepository):
    def get_by_id(self, id: str) -> Optional[PaymentReference]:
        return PaymentReference.objects.filter(id=id).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = PaymentReference.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: PaymentReference) -> PaymentReference:
        entity.save()
        return entity

    def create_reference(self, order_id: UUID, reference: str) -> PaymentReference:
        return PaymentReference.objects.create(order_id=order_id, reference=reference)

    def get_reference(self, reference: str) -> Optional[PaymentReference]:
        return PaymentReference.objects.filter(reference=reference).first()

    def mark_reference_used(self, reference_id: UUID) -> None:
        PaymentReference.objects.filter(id=reference_id, used_at__isnull=True).update(
            used_at=timezone.now(), updated_at=timezone.now()
        )

    def get_event(self, reference: str, event_status: str) -> Optional[GatewayEvent]:
        return GatewayEvent.objects.filter(
            reference=reference, event_status=event_status
        ).first()

    def record_event(self, dto: GatewayEventDTO) -> GatewayEvent:
        return GatewayEvent.objects.create(
            reference=dto.reference,
            event_status=dto.status,
            transaction_id=dto.transaction_id,
            amount=dto.amount,
            payload=dto.payload,
        )

    def set_outcome(self, event_id: UUID, outcome: str, error_message: str = "") -> None:
        GatewayEvent.objects.filter(id=event_id).update(
            outcome=outcome, error_message=error_message, updated_at=timezone.now()
        )

    def needing_reconciliation(self) -> QuerySet:
        return GatewayEvent.objects.filter(outcome=GatewayEventOutcome.NEEDS_RECONCILIATION)
