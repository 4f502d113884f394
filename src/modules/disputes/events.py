"""Domain events for the Disputes bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class DisputeOpened(DomainEvent):
    """Raised when a participant opens a dispute against an order."""

    order_id: str = ""
    raised_by_role: str = ""


@dataclass(frozen=True)
class DisputeStatusChanged(DomainEvent):
    """Raised on every accepted dispute status change."""

    order_id: str = ""
    from_status: str = ""
    to_status: str = ""
    refund_amount: str = ""
