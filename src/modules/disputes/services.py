"""Dispute service layer (Use Cases).

Business rules enforced:
- Buyers and involved producers raise disputes; administrators arbitrate.
- A PENDING order cannot be disputed, and an order has at most one
  OPEN / UNDER_REVIEW dispute (checked under the order row lock and
  backed by a partial unique constraint).
- Evidence and messages are accepted only while the dispute is active.
- Internal messages are posted and read by administrators only.
- REFUNDED applies the refund to the order's payment axis in the same
  transaction; the order's delivery status is never touched.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Optional

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.disputes.constants import (
    DisputeStatus,
    MessageType,
    TERMINAL_DISPUTE_STATES,
)
from modules.disputes.events import DisputeOpened, DisputeStatusChanged
from modules.disputes.exceptions import (
    ActiveDisputeExists,
    DisputeAccessDenied,
    DisputeConflict,
    DisputeIsClosed,
    DisputeNotFound,
    IllegalDisputeTransition,
    InternalMessageForbidden,
    InvalidDisputeInput,
    OrderNotDisputable,
)
from modules.disputes.state_machine import allowed_dispute_transitions
from modules.orders.constants import DeliveryStatus
from modules.orders.exceptions import OrderAccessDenied, OrderNotFound
from modules.participants.actors import Actor
from modules.participants.exceptions import RoleNotPermitted
from modules.participants.models import ActorRole

if TYPE_CHECKING:
    from modules.disputes.dtos import (
        AddEvidenceDTO,
        AddMessageDTO,
        OpenDisputeDTO,
        UpdateDisputeStatusDTO,
    )
    from modules.disputes.models import Dispute, DisputeEvidence, DisputeMessage
    from modules.disputes.repositories.interfaces import IDisputeRepository
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)


class DisputeService:
    """Application service for Dispute use-cases.

    Refunds go through ``OrderService.apply_refund`` so the order's payment
    axis keeps a single writer discipline.
    """

    def __init__(
        self,
        dispute_repository: IDisputeRepository,
        order_repository: IOrderRepository,
        order_service: OrderService,
    ) -> None:
        self._dispute_repo = dispute_repository
        self._order_repo = order_repository
        self._orders = order_service

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def open_dispute(self, dto: OpenDisputeDTO, actor: Actor) -> Dispute:
        """Open a dispute against an order.

        Raises:
            RoleNotPermitted: administrators cannot raise disputes.
            OrderNotFound: the order does not exist.
            OrderAccessDenied: the actor takes no part in the order.
            OrderNotDisputable: the order is still PENDING.
            ActiveDisputeExists: the order already has an active dispute.
        """
        if actor.role not in (ActorRole.BUYER, ActorRole.PRODUCER):
            raise RoleNotPermitted("Only buyers and producers can open disputes.")

        log = logger.bind(order_id=str(dto.order_id), actor_role=actor.role)

        order = self._order_repo.get_for_update(str(dto.order_id))
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")
        self._orders.ensure_involved(order, actor)

        if order.delivery_status == DeliveryStatus.PENDING:
            log.warning("dispute.order_not_disputable")
            raise OrderNotDisputable("A pending order cannot be disputed yet.")

        if self._dispute_repo.get_active_for_order(order.id):
            log.warning("dispute.already_active")
            raise ActiveDisputeExists(f"Order {order.id} already has an active dispute.")

        try:
            with transaction.atomic():
                dispute = self._dispute_repo.create(
                    {
                        "order_id": order.id,
                        "raised_by_id": actor.id,
                        "raised_by_role": actor.role,
                        "reason": dto.reason,
                        "description": dto.description,
                    }
                )
        except IntegrityError:
            log.warning("dispute.already_active", race=True)
            raise ActiveDisputeExists(
                f"Order {order.id} already has an active dispute."
            ) from None

        self._dispute_repo.add_message(
            dispute.id,
            Actor.system(),
            f"Dispute opened: {dto.reason}",
            MessageType.SYSTEM,
        )
        dispute.add_domain_event(
            DisputeOpened(
                aggregate_id=dispute.id,
                order_id=str(order.id),
                raised_by_role=actor.role,
            )
        )
        self._dispute_repo.save(dispute)

        log.info("dispute.opened", dispute_id=str(dispute.id))
        return dispute

    @transaction.atomic
    def add_evidence(self, dispute_id: Any, dto: AddEvidenceDTO, actor: Actor) -> DisputeEvidence:
        """Attach an evidence reference to an active dispute.

        Raises:
            DisputeNotFound, DisputeAccessDenied, DisputeIsClosed.
        """
        dispute = self._get_active_for_update(dispute_id, actor)
        evidence = self._dispute_repo.add_evidence(
            dispute.id,
            actor,
            {
                "evidence_type": dto.evidence_type,
                "file_reference": dto.file_reference,
                "filename": dto.filename,
                "description": dto.description,
            },
        )
        self._dispute_repo.add_message(
            dispute.id,
            actor,
            f"Added evidence: {dto.filename}",
            MessageType.SYSTEM,
        )
        logger.info(
            "dispute.evidence_added",
            dispute_id=str(dispute.id),
            evidence_id=str(evidence.id),
            actor_role=actor.role,
        )
        return evidence

    @transaction.atomic
    def add_message(self, dispute_id: Any, dto: AddMessageDTO, actor: Actor) -> DisputeMessage:
        """Post to an active dispute's thread.

        Raises:
            InternalMessageForbidden: a non-admin posted an internal message.
            DisputeNotFound, DisputeAccessDenied, DisputeIsClosed.
        """
        if dto.is_internal and actor.role != ActorRole.ADMIN:
            raise InternalMessageForbidden("Only administrators can post internal messages.")
        dispute = self._get_active_for_update(dispute_id, actor)
        message = self._dispute_repo.add_message(
            dispute.id,
            actor,
            dto.content,
            MessageType.MESSAGE,
            is_internal=dto.is_internal,
        )
        logger.info(
            "dispute.message_added",
            dispute_id=str(dispute.id),
            is_internal=dto.is_internal,
            actor_role=actor.role,
        )
        return message

    @transaction.atomic
    def update_status(
        self, dispute_id: Any, dto: UpdateDisputeStatusDTO, actor: Actor
    ) -> Dispute:
        """Administrative status change, including refunds.

        Raises:
            RoleNotPermitted: the actor is not an administrator.
            DisputeNotFound: the dispute does not exist.
            DisputeIsClosed: the dispute is terminal.
            IllegalDisputeTransition: the target is not reachable.
            InvalidDisputeInput: REFUNDED without a valid ``refund_amount``.
            InvalidRefund, PaymentNotRefundable, OrderConflict: from the
                order's payment axis.
        """
        if actor.role != ActorRole.ADMIN:
            raise RoleNotPermitted("Only administrators can change a dispute's status.")

        dispute = self._get_for_update(dispute_id)
        target = DisputeStatus(dto.status)
        self._check_transition(dispute, target, actor)

        refund_amount: Optional[Decimal] = None
        if target == DisputeStatus.REFUNDED:
            if dto.refund_amount is None:
                raise InvalidDisputeInput(
                    "A refund amount is required to refund a dispute.",
                    attr="refund_amount",
                )
            order = dispute.order
            if dto.refund_amount > order.total_amount:
                raise InvalidDisputeInput(
                    f"Refund amount {dto.refund_amount} exceeds the order total "
                    f"{order.total_amount}.",
                    attr="refund_amount",
                )
            refund_amount = dto.refund_amount
            self._orders.apply_refund(
                order.id,
                refund_amount,
                actor,
                reason=f"Dispute {dispute.id} refunded",
            )

        return self._apply_transition(
            dispute, target, actor, resolution=dto.resolution, refund_amount=refund_amount
        )

    @transaction.atomic
    def resolve(self, dispute_id: Any, actor: Actor, resolution: str = "") -> Dispute:
        """The raiser settles an OPEN dispute without a refund."""
        dispute = self._get_for_update(dispute_id)
        self._ensure_raiser(dispute, actor)
        self._check_transition(dispute, DisputeStatus.RESOLVED, actor)
        return self._apply_transition(
            dispute,
            DisputeStatus.RESOLVED,
            actor,
            resolution=resolution or "Resolved by the participant who raised it",
        )

    @transaction.atomic
    def withdraw(self, dispute_id: Any, actor: Actor, reason: str = "") -> Dispute:
        """The raiser withdraws an OPEN dispute."""
        dispute = self._get_for_update(dispute_id)
        self._ensure_raiser(dispute, actor)
        self._check_transition(dispute, DisputeStatus.CANCELLED, actor)
        return self._apply_transition(
            dispute,
            DisputeStatus.CANCELLED,
            actor,
            resolution=reason or "Withdrawn by the participant who raised it",
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_dispute(self, dispute_id: Any, actor: Actor) -> Dispute:
        dispute = self._dispute_repo.get_by_id(str(dispute_id))
        if not dispute:
            raise DisputeNotFound(f"Dispute {dispute_id} not found.")
        self._ensure_participant(dispute, actor)
        return dispute

    def list_disputes(self, actor: Actor, status: Optional[str] = None):
        queryset = self._dispute_repo.visible_to(actor)
        if status:
            queryset = queryset.filter(status=status.upper())
        return queryset

    def get_messages(self, dispute_id: Any, actor: Actor) -> List[DisputeMessage]:
        """Thread of a dispute; internal notes only for administrators."""
        dispute = self.get_dispute(dispute_id, actor)
        return self._dispute_repo.get_messages(
            dispute.id, include_internal=actor.role == ActorRole.ADMIN
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_for_update(self, dispute_id: Any) -> Dispute:
        dispute = self._dispute_repo.get_for_update(str(dispute_id))
        if not dispute:
            raise DisputeNotFound(f"Dispute {dispute_id} not found.")
        return dispute

    def _get_active_for_update(self, dispute_id: Any, actor: Actor) -> Dispute:
        dispute = self._get_for_update(dispute_id)
        self._ensure_participant(dispute, actor)
        if dispute.is_terminal:
            raise DisputeIsClosed(f"Dispute {dispute.id} is {dispute.status}.")
        return dispute

    def _ensure_participant(self, dispute: Dispute, actor: Actor) -> None:
        if actor.role == ActorRole.ADMIN or dispute.raised_by_id == actor.id:
            return
        try:
            self._orders.ensure_involved(dispute.order, actor)
        except OrderAccessDenied:
            raise DisputeAccessDenied(
                f"Dispute {dispute.id} does not involve this participant."
            ) from None

    def _ensure_raiser(self, dispute: Dispute, actor: Actor) -> None:
        if dispute.raised_by_id != actor.id:
            raise DisputeAccessDenied("Only the participant who raised the dispute can do this.")

    def _check_transition(self, dispute: Dispute, target: DisputeStatus, actor: Actor) -> None:
        current = DisputeStatus(dispute.status)
        if current in TERMINAL_DISPUTE_STATES:
            raise DisputeIsClosed(f"Dispute {dispute.id} is {current}.")
        allowed = allowed_dispute_transitions(
            actor.role, dispute.raised_by_id == actor.id, current
        )
        if target not in allowed:
            logger.warning(
                "dispute.illegal_transition",
                dispute_id=str(dispute.id),
                current_status=current,
                requested_status=target,
                actor_role=actor.role,
            )
            raise IllegalDisputeTransition(
                f"{actor.role} cannot move a dispute from {current} to {target}."
            )

    def _apply_transition(
        self,
        dispute: Dispute,
        target: DisputeStatus,
        actor: Actor,
        resolution: Optional[str] = None,
        refund_amount: Optional[Decimal] = None,
    ) -> Dispute:
        current = dispute.status
        changes: dict[str, Any] = {}
        if target in TERMINAL_DISPUTE_STATES:
            changes.update(
                resolution=resolution or "",
                resolved_by_id=actor.id,
                resolved_at=timezone.now(),
                refund_amount=refund_amount,
            )

        if not self._dispute_repo.compare_and_set_status(
            dispute.id, expected=current, new=target, **changes
        ):
            raise DisputeConflict("Dispute status changed concurrently; re-read and retry.")

        content = f"Dispute status changed to: {target}"
        if resolution:
            content = f"{content} - {resolution}"
        self._dispute_repo.add_message(dispute.id, actor, content, MessageType.STATUS_CHANGE)

        dispute = self._dispute_repo.get_by_id(str(dispute.id))
        dispute.add_domain_event(
            DisputeStatusChanged(
                aggregate_id=dispute.id,
                order_id=str(dispute.order_id),
                from_status=current,
                to_status=target,
                refund_amount=str(refund_amount) if refund_amount is not None else "",
            )
        )
        self._dispute_repo.save(dispute)

        logger.info(
            "dispute.status_changed",
            dispute_id=str(dispute.id),
            from_status=current,
            to_status=target,
            actor_role=actor.role,
        )
        return dispute
