"""Status transition table of the dispute workflow.

Administrators take an OPEN dispute under review and close it from there,
with or without a refund.  The participant who raised the dispute may only
settle it themselves (RESOLVED, no refund) or withdraw it (CANCELLED), and
only while it is still OPEN.  Terminal states have no exits.
"""

from __future__ import annotations

from modules.disputes.constants import DisputeStatus
from modules.participants.models import ActorRole

_NOTHING: frozenset[DisputeStatus] = frozenset()


def allowed_dispute_transitions(
    role: ActorRole, is_raiser: bool, current: DisputeStatus
) -> frozenset[DisputeStatus]:
    match (role, is_raiser, current):
        case (ActorRole.ADMIN, _, DisputeStatus.OPEN):
            return frozenset({DisputeStatus.UNDER_REVIEW})
        case (ActorRole.ADMIN, _, DisputeStatus.UNDER_REVIEW):
            return frozenset({DisputeStatus.RESOLVED, DisputeStatus.REFUNDED})
        case (ActorRole.BUYER | ActorRole.PRODUCER, True, DisputeStatus.OPEN):
            return frozenset({DisputeStatus.RESOLVED, DisputeStatus.CANCELLED})
        case _:
            return _NOTHING
