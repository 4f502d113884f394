"""Payment repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.payments.dtos import GatewayEventDTO
    from modules.payments.models import GatewayEvent, PaymentReference


class IPaymentRepository(IRepository["PaymentReference"]):
    @abstractmethod
    def create_reference(self, order_id: UUID, reference: str) -> PaymentReference:
        """Store a new gateway reference for the order."""

    @abstractmethod
    def get_reference(self, reference: str) -> Optional[PaymentReference]:
        """Look a gateway reference up."""

    @abstractmethod
    def mark_reference_used(self, reference_id: UUID) -> None:
        """Stamp ``used_at`` once the payment settled."""

    @abstractmethod
    def get_event(self, reference: str, event_status: str) -> Optional[GatewayEvent]:
        """The stored callback for this (reference, status), if any."""

    @abstractmethod
    def record_event(self, dto: GatewayEventDTO) -> GatewayEvent:
        """Insert the callback; raises ``IntegrityError`` if already stored."""

    @abstractmethod
    def set_outcome(self, event_id: UUID, outcome: str, error_message: str = "") -> None:
        """Record how the callback was handled."""

    @abstractmethod
    def needing_reconciliation(self) -> Any:
        """Callbacks an operator has to look at."""
