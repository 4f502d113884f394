"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs:
atomic creation with items, compare-and-set writes on each status axis,
append-only history, payouts, and idempotency-key look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderPayout, OrderStatusHistory
    from modules.orders.splits import ProducerPayout
    from modules.participants.actors import Actor


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children, OrderStatusHistory
    records and OrderPayout rows.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``buyer_id``, ``shipping_address`` and
        ``items`` (list of dicts with ``snapshot`` and ``quantity``), and
        optionally ``idempotency_key`` and ``notes``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def visible_to(self, actor: Actor) -> Any:
        """Queryset of orders the actor may read."""

    @abstractmethod
    def is_producer_involved(self, order_id: UUID, producer_id: UUID) -> bool:
        """Whether any item of the order is owned or co-produced by the producer."""

    @abstractmethod
    def compare_and_set_delivery(
        self,
        order_id: UUID,
        expected: str,
        new: str,
        delivery_proof: Optional[str] = None,
    ) -> bool:
        """Set ``delivery_status`` only if it still equals ``expected``."""

    @abstractmethod
    def compare_and_set_payment(
        self,
        order_id: UUID,
        expected: str,
        new: str,
        expected_refunded: Optional[Decimal] = None,
        refunded_amount: Optional[Decimal] = None,
    ) -> bool:
        """Set ``payment_status`` only if it (and the refunded amount) still match."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        axis: str,
        from_status: Optional[str],
        to_status: str,
        actor: Actor,
        reason: str = "",
    ) -> OrderStatusHistory:
        """Append one entry to the order's audit trail."""

    @abstractmethod
    def get_history(self, order_id: UUID) -> List[OrderStatusHistory]:
        """Audit trail in chronological order."""

    @abstractmethod
    def save_payouts(self, order_id: UUID, payouts: Iterable[ProducerPayout]) -> List[OrderPayout]:
        """Persist payouts once; existing rows are returned unchanged."""

    @abstractmethod
    def get_payouts(self, order_id: UUID) -> List[OrderPayout]:
        """Payout rows of an order ordered by producer."""

    @abstractmethod
    def next_anchor_attempt(self, order_id: UUID) -> int:
        """Atomically increment and return the order's anchor attempt marker."""

    @abstractmethod
    def set_ledger_state(self, order_id: UUID, recorded: bool, error: Optional[str]) -> None:
        """Record anchoring progress for UI polling."""
