"""Payout service layer.

Payout rows are written by anchoring once an order settles (PENDING).  A
periodic scheduler assigns them the next weekly payout date (SCHEDULED),
holding back orders under an active dispute.  Administrators then record
the transfer: PROCESSING, and finally COMPLETED with the bank or wallet
reference, or FAILED with a reason.

Every status write is a compare-and-set on the status read, so two
administrators acting on one payout cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import PayoutStatus
from modules.orders.models import OrderPayout
from modules.participants.actors import Actor
from modules.participants.exceptions import RoleNotPermitted
from modules.participants.models import ActorRole
from modules.payouts.dtos import CompletePayoutDTO, EarningsSummary, FailPayoutDTO
from modules.payouts.exceptions import (
    IllegalPayoutTransition,
    InvalidPayoutInput,
    PayoutAccessDenied,
    PayoutConflict,
    PayoutNotFound,
)
from modules.payouts.repositories.interfaces import IPayoutRepository
from modules.payouts.state_machine import allowed_transitions

logger = structlog.get_logger(__name__)


def next_payout_date(now: datetime, weekday: int, hour: int) -> datetime:
    """The next payout slot strictly after today.

    ``weekday`` follows ``datetime.weekday()`` (Monday is 0).  On the payout
    day itself the slot moves to the following week.
    """
    days_ahead = (weekday - now.weekday()) % 7 or 7
    return (now + timedelta(days=days_ahead)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )


class PayoutService:
    """Scheduling, administration and reporting of producer payouts."""

    def __init__(self, payout_repository: IPayoutRepository) -> None:
        self._payout_repo = payout_repository

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_pending(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        """Give every schedulable PENDING payout the next payout date.

        Returns how many payouts were scheduled.  A payout another worker
        scheduled first is skipped.
        """
        now = now or timezone.now()
        scheduled_for = next_payout_date(now, settings.PAYOUT_WEEKDAY, settings.PAYOUT_HOUR)
        batch = self._payout_repo.schedulable(limit or settings.PAYOUT_SCHEDULE_BATCH_SIZE)

        scheduled = 0
        for payout in batch:
            if self._payout_repo.compare_and_set_status(
                payout.id,
                expected=PayoutStatus.PENDING,
                new=PayoutStatus.SCHEDULED,
                scheduled_for=scheduled_for,
            ):
                scheduled += 1

        if scheduled:
            logger.info(
                "payout.scheduled",
                count=scheduled,
                scheduled_for=scheduled_for.isoformat(),
            )
        return scheduled

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @transaction.atomic
    def process(self, payout_id: Any, actor: Actor) -> OrderPayout:
        """Mark a SCHEDULED payout as being transferred.

        Raises:
            RoleNotPermitted: the actor is not an administrator.
            PayoutNotFound: the payout does not exist.
            IllegalPayoutTransition: the payout is not SCHEDULED.
            PayoutConflict: another administrator changed it first.
        """
        return self._move(payout_id, PayoutStatus.PROCESSING, actor)

    @transaction.atomic
    def complete(self, payout_id: Any, dto: CompletePayoutDTO, actor: Actor) -> OrderPayout:
        """Record a finished transfer with its bank or wallet reference."""
        return self._move(
            payout_id,
            PayoutStatus.COMPLETED,
            actor,
            paid_at=timezone.now(),
            payout_reference=dto.payout_reference,
            payout_method=dto.payout_method,
        )

    @transaction.atomic
    def fail(self, payout_id: Any, dto: FailPayoutDTO, actor: Actor) -> OrderPayout:
        """Record that a transfer could not be made."""
        return self._move(payout_id, PayoutStatus.FAILED, actor, failure_reason=dto.reason)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payout(self, payout_id: Any, actor: Actor) -> OrderPayout:
        """A payout its producer or an administrator may read.

        Raises:
            PayoutNotFound: the payout does not exist.
            PayoutAccessDenied: the payout belongs to another producer.
        """
        payout = self._payout_repo.get_by_id(str(payout_id))
        if payout is None:
            raise PayoutNotFound(f"Payout {payout_id} not found.")
        if actor.role == ActorRole.ADMIN:
            return payout
        if actor.role == ActorRole.PRODUCER and payout.producer_id == actor.id:
            return payout
        raise PayoutAccessDenied(f"Payout {payout_id} belongs to another producer.")

    def list_own(self, actor: Actor):
        """The producer's payouts, newest first."""
        if actor.role != ActorRole.PRODUCER:
            raise RoleNotPermitted("Only producers have payouts of their own.")
        return self._payout_repo.of_producer(actor.id)

    def earnings(self, actor: Actor) -> EarningsSummary:
        if actor.role != ActorRole.PRODUCER:
            raise RoleNotPermitted("Only producers have earnings.")
        return self._payout_repo.earnings(actor.id)

    def list_for_producer(self, producer_id: Any, actor: Actor):
        self._ensure_admin(actor)
        try:
            producer_id = UUID(str(producer_id))
        except ValueError:
            raise InvalidPayoutInput(
                f"{producer_id!r} is not a producer id.", attr="producer_id"
            ) from None
        return self._payout_repo.of_producer(producer_id)

    def queued(self, actor: Actor):
        """PENDING and SCHEDULED payouts, earliest payout date first."""
        self._ensure_admin(actor)
        return self._payout_repo.queued()

    def due(self, actor: Actor, now: Optional[datetime] = None):
        """SCHEDULED payouts whose payout date has arrived."""
        self._ensure_admin(actor)
        return self._payout_repo.due(now)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_admin(self, actor: Actor) -> None:
        if actor.role != ActorRole.ADMIN:
            raise RoleNotPermitted("Only administrators can manage payouts.")

    def _move(
        self, payout_id: Any, target: PayoutStatus, actor: Actor, **changes: Any
    ) -> OrderPayout:
        self._ensure_admin(actor)
        payout = self._payout_repo.get_by_id(str(payout_id))
        if payout is None:
            raise PayoutNotFound(f"Payout {payout_id} not found.")

        current = PayoutStatus(payout.status)
        log = logger.bind(
            payout_id=str(payout.id),
            order_id=str(payout.order_id),
            current_status=current,
            requested_status=target,
        )
        if target not in allowed_transitions(actor.role, current):
            log.warning("payout.illegal_transition")
            raise IllegalPayoutTransition(f"A {current} payout cannot become {target}.")

        if not self._payout_repo.compare_and_set_status(
            payout.id, expected=current, new=target, **changes
        ):
            log.warning("payout.transition_conflict")
            raise PayoutConflict("Payout status changed concurrently; re-read and retry.")

        log.info("payout.transitioned", new_status=target, actor_id=str(actor.id))
        return self._payout_repo.get_by_id(str(payout.id))
