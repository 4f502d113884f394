"""Django ORM implementation of the Payout repository."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import DecimalField, Exists, OuterRef, Q, QuerySet, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone

from modules.disputes.models import Dispute
from modules.orders.constants import OPEN_PAYOUT_STATES, PayoutStatus
from modules.orders.models import OrderPayout
from modules.payouts.dtos import EarningsSummary
from modules.payouts.repositories.interfaces import IPayoutRepository

logger = structlog.get_logger(__name__)

_ZERO = Value(Decimal("0.00"), output_field=DecimalField(max_digits=12, decimal_places=2))


def _net_sum(condition: Optional[Q] = None) -> Coalesce:
    return Coalesce(Sum("net_payout", filter=condition), _ZERO)


class PayoutDjangoRepository(IPayoutRepository):
    """Concrete Payout repository backed by Django ORM."""

    def _base_queryset(self) -> QuerySet:
        return OrderPayout.objects.select_related("order", "producer")

    def get_by_id(self, id: str) -> Optional[OrderPayout]:
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: OrderPayout) -> OrderPayout:
        entity.save()
        return entity

    def schedulable(self, limit: int) -> List[OrderPayout]:
        disputed = Dispute.objects.active().filter(order_id=OuterRef("order_id"))
        return list(
            OrderPayout.objects.filter(status=PayoutStatus.PENDING)
            .exclude(Exists(disputed))
            .order_by("created_at")[:limit]
        )

    def compare_and_set_status(
        self, payout_id: UUID, expected: str, new: str, **changes: Any
    ) -> bool:
        updated = OrderPayout.objects.filter(id=payout_id, status=expected).update(
            status=new, updated_at=timezone.now(), **changes
        )
        return updated == 1

    def of_producer(self, producer_id: UUID) -> QuerySet:
        return self._base_queryset().of_producer(producer_id).order_by("-created_at", "-id")

    def queued(self) -> QuerySet:
        return self._base_queryset().queued()

    def due(self, now: Optional[datetime] = None) -> QuerySet:
        return self._base_queryset().due(now)

    def earnings(self, producer_id: UUID) -> EarningsSummary:
        totals = OrderPayout.objects.of_producer(producer_id).aggregate(
            pending=_net_sum(Q(status__in=OPEN_PAYOUT_STATES)),
            completed=_net_sum(Q(status=PayoutStatus.COMPLETED)),
            total=_net_sum(),
        )
        return EarningsSummary(**totals)
