"""Ledger repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.ledger.client import LedgerReceipt
    from modules.ledger.models import LedgerRecord


class ILedgerRepository(IRepository["LedgerRecord"]):
    @abstractmethod
    def get_for_order(self, order_id: UUID) -> Optional[LedgerRecord]:
        """The order's ledger record, if it was anchored."""

    @abstractmethod
    def create_record(
        self, order_id: UUID, fingerprint: str, receipt: LedgerReceipt
    ) -> LedgerRecord:
        """Insert the record; raises ``IntegrityError`` if one already exists."""

    @abstractmethod
    def payment_reference_for(self, order_id: UUID) -> Optional[str]:
        """Gateway reference of the payment that settled the order."""

    @abstractmethod
    def awaiting_anchor(self, limit: int) -> List[UUID]:
        """Ids of settled orders that still have no ledger record."""
