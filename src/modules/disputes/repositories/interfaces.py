"""Dispute repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.disputes.models import Dispute, DisputeEvidence, DisputeMessage
    from modules.participants.actors import Actor


class IDisputeRepository(IRepository["Dispute"]):
    """Repository contract for the Dispute aggregate (evidence + messages)."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Dispute:
        """Insert a dispute; raises ``IntegrityError`` if one is already active."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Dispute]:
        """Retrieve a dispute holding a row-level lock."""

    @abstractmethod
    def get_active_for_order(self, order_id: UUID) -> Optional[Dispute]:
        """The OPEN / UNDER_REVIEW dispute of the order, if any."""

    @abstractmethod
    def visible_to(self, actor: Actor) -> Any:
        """Queryset of disputes the actor may read."""

    @abstractmethod
    def compare_and_set_status(
        self, dispute_id: UUID, expected: str, new: str, **changes: Any
    ) -> bool:
        """Set ``status`` (and ``changes``) only if it still equals ``expected``."""

    @abstractmethod
    def add_evidence(self, dispute_id: UUID, actor: Actor, data: Dict[str, Any]) -> DisputeEvidence:
        """Append an evidence reference."""

    @abstractmethod
    def add_message(
        self,
        dispute_id: UUID,
        sender: Actor,
        content: str,
        message_type: str,
        is_internal: bool = False,
    ) -> DisputeMessage:
        """Append a message to the thread."""

    @abstractmethod
    def get_messages(self, dispute_id: UUID, include_internal: bool) -> List[DisputeMessage]:
        """Thread in chronological order."""
