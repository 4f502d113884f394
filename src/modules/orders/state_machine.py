"""Delivery-status transition table of the order lifecycle.

``allowed_transitions`` is total over every (role, status) pair: anything
not matched explicitly allows nothing.  DELIVERED has no exits here; a
delivered order only changes money-wise through the dispute refund path.
"""

from __future__ import annotations

from modules.orders.constants import DeliveryStatus
from modules.participants.models import ActorRole

_NOTHING: frozenset[DeliveryStatus] = frozenset()


def allowed_transitions(role: ActorRole, current: DeliveryStatus) -> frozenset[DeliveryStatus]:
    """Return the delivery statuses ``role`` may move an order to from ``current``."""
    match (role, current):
        case (ActorRole.BUYER, DeliveryStatus.PENDING):
            return frozenset({DeliveryStatus.CANCELLED})
        case (ActorRole.PRODUCER | ActorRole.ADMIN, DeliveryStatus.PENDING):
            return frozenset(
                {DeliveryStatus.CONFIRMED, DeliveryStatus.SHIPPED, DeliveryStatus.CANCELLED}
            )
        case (ActorRole.PRODUCER | ActorRole.ADMIN, DeliveryStatus.CONFIRMED):
            return frozenset({DeliveryStatus.SHIPPED, DeliveryStatus.CANCELLED})
        case (ActorRole.PRODUCER | ActorRole.ADMIN, DeliveryStatus.SHIPPED):
            return frozenset({DeliveryStatus.DELIVERED})
        case (ActorRole.ADMIN, DeliveryStatus.CANCELLED):
            # Manual recovery of a cancelled order.
            return frozenset({DeliveryStatus.PENDING})
        case _:
            return _NOTHING


def can_transition(role: ActorRole, current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return target in allowed_transitions(role, current)
