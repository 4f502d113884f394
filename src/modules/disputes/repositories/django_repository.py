"""Django ORM implementation of the Dispute repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.core.outbox import record_domain_events
from modules.disputes.models import Dispute, DisputeEvidence, DisputeMessage
from modules.disputes.repositories.interfaces import IDisputeRepository
from modules.participants.actors import Actor
from modules.participants.models import ActorRole

logger = structlog.get_logger(__name__)


class DisputeDjangoRepository(IDisputeRepository):
    """Concrete Dispute repository backed by Django ORM."""

    def create(self, data: Dict[str, Any]) -> Dispute:
        dispute = Dispute(
            order_id=data["order_id"],
            raised_by_id=data["raised_by_id"],
            raised_by_role=data["raised_by_role"],
            reason=data["reason"],
            description=data.get("description", ""),
        )
        dispute.save()
        logger.info(
            "dispute.persisted",
            dispute_id=str(dispute.id),
            order_id=str(dispute.order_id),
        )
        return dispute

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Dispute]:
        try:
            return (
                Dispute.objects.select_related("order")
                .prefetch_related("evidence")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Dispute]:
        try:
            return Dispute.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_active_for_order(self, order_id: UUID) -> Optional[Dispute]:
        return Dispute.objects.active().filter(order_id=order_id).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Dispute.objects.select_related("order")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def visible_to(self, actor: Actor) -> QuerySet:
        queryset = self.list()
        if actor.role == ActorRole.ADMIN:
            return queryset
        if actor.role in (ActorRole.BUYER, ActorRole.PRODUCER):
            return queryset.involving(actor.id)
        return queryset.none()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Dispute) -> Dispute:
        """Persist a new dispute and move its domain events into the outbox."""
        if entity._state.adding:
            entity.save()
        event_count = record_domain_events(entity, topic="disputes")
        logger.info("dispute.saved", dispute_id=str(entity.id), event_count=event_count)
        return entity

    def compare_and_set_status(
        self, dispute_id: UUID, expected: str, new: str, **changes: Any
    ) -> bool:
        updated = Dispute.objects.filter(id=dispute_id, status=expected).update(
            status=new, updated_at=timezone.now(), **changes
        )
        return updated == 1

    def add_evidence(
        self, dispute_id: UUID, actor: Actor, data: Dict[str, Any]
    ) -> DisputeEvidence:
        evidence = DisputeEvidence(
            dispute_id=dispute_id,
            uploaded_by_id=actor.id,
            uploaded_by_role=actor.role,
            evidence_type=data["evidence_type"],
            file_reference=data["file_reference"],
            filename=data["filename"],
            description=data.get("description", ""),
        )
        evidence.save()
        return evidence

    def add_message(
        self,
        dispute_id: UUID,
        sender: Actor,
        content: str,
        message_type: str,
        is_internal: bool = False,
    ) -> DisputeMessage:
        message = DisputeMessage(
            dispute_id=dispute_id,
            sender_id=sender.id,
            sender_role=sender.role,
            content=content,
            message_type=message_type,
            is_internal=is_internal,
        )
        message.save()
        return message

    def get_messages(self, dispute_id: UUID, include_internal: bool) -> List[DisputeMessage]:
        queryset = DisputeMessage.objects.filter(dispute_id=dispute_id)
        if not include_internal:
            queryset = queryset.filter(is_internal=False)
        return list(queryset.order_by("created_at", "id"))
