"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when the delivery status changes."""

    from_status: str = ""
    to_status: str = ""
    actor_role: str = ""


@dataclass(frozen=True)
class OrderPaymentStatusChanged(DomainEvent):
    """Raised when the payment status changes (gateway event or refund)."""

    from_status: str = ""
    to_status: str = ""


@dataclass(frozen=True)
class OrderRefunded(DomainEvent):
    """Raised when a dispute refund is applied to the order."""

    amount: str = ""
    refunded_total: str = ""


@dataclass(frozen=True)
class OrderSettled(DomainEvent):
    """Raised when an order is both DELIVERED and paid; triggers anchoring."""
