"""Lifecycle table of a producer payout.

Scheduling is done by the periodic scheduler (SYSTEM); every later step
is an administrator recording what happened at the bank or wallet.
COMPLETED and FAILED are terminal.
"""

from __future__ import annotations

from modules.orders.constants import PayoutStatus
from modules.participants.models import ActorRole

_NOTHING: frozenset[PayoutStatus] = frozenset()


def allowed_transitions(role: ActorRole, current: PayoutStatus) -> frozenset[PayoutStatus]:
    """Return the payout statuses ``role`` may move a payout to from ``current``."""
    match (role, current):
        case (ActorRole.SYSTEM, PayoutStatus.PENDING):
            return frozenset({PayoutStatus.SCHEDULED})
        case (ActorRole.ADMIN, PayoutStatus.SCHEDULED):
            return frozenset({PayoutStatus.PROCESSING, PayoutStatus.FAILED})
        case (ActorRole.ADMIN, PayoutStatus.PROCESSING):
            return frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED})
        case _:
            return _NOTHING
