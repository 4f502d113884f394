"""Payout repository interface."""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import OrderPayout
    from modules.payouts.dtos import EarningsSummary


class IPayoutRepository(IRepository["OrderPayout"]):
    """Repository contract for producer payouts (rows of ``order_payouts``)."""

    @abstractmethod
    def schedulable(self, limit: int) -> List[OrderPayout]:
        """PENDING payouts whose order has no active dispute."""

    @abstractmethod
    def compare_and_set_status(
        self, payout_id: UUID, expected: str, new: str, **changes: Any
    ) -> bool:
        """Set ``status`` (and ``changes``) only if it still equals ``expected``."""

    @abstractmethod
    def of_producer(self, producer_id: UUID) -> Any:
        """Queryset of one producer's payouts, newest first."""

    @abstractmethod
    def queued(self) -> Any:
        """Queryset of PENDING and SCHEDULED payouts."""

    @abstractmethod
    def due(self, now: Optional[datetime] = None) -> Any:
        """Queryset of SCHEDULED payouts whose payout date has arrived."""

    @abstractmethod
    def earnings(self, producer_id: UUID) -> EarningsSummary:
        """Net totals of one producer by payout progress."""
