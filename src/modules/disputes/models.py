"""Dispute, DisputeEvidence and DisputeMessage models.

Business rules implemented:
- A dispute belongs to exactly one order; at most one dispute per order is
  OPEN or UNDER_REVIEW (partial unique constraint, so concurrent openings
  cannot both succeed).
- ``resolution``, ``resolved_by`` and ``resolved_at`` are set only when the
  dispute reaches a terminal state; ``refund_amount`` only on REFUNDED.
- Evidence and messages are append-only.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import AppendOnlyModel, BaseModel
from modules.disputes.constants import (
    ACTIVE_DISPUTE_STATES,
    DisputeStatus,
    EvidenceType,
    MessageType,
    TERMINAL_DISPUTE_STATES,
)
from modules.participants.models import ActorRole
from shared.domain.events import DomainEventMixin


class DisputeQuerySet(models.QuerySet):
    def active(self) -> DisputeQuerySet:
        return self.filter(status__in=ACTIVE_DISPUTE_STATES)

    def involving(self, participant_id) -> DisputeQuerySet:
        """Disputes raised by the participant or on orders involving it."""
        return self.filter(
            models.Q(raised_by_id=participant_id)
            | models.Q(order__buyer_id=participant_id)
            | models.Q(order__items__snapshot__owner_producer_id=participant_id)
            | models.Q(order__items__snapshot__shares__producer_id=participant_id)
        ).distinct()


class Dispute(DomainEventMixin, BaseModel):
    """Dispute aggregate root, opened against a single order."""

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="disputes",
    )
    raised_by = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="raised_disputes",
    )
    raised_by_role = models.CharField(max_length=20, choices=ActorRole.choices)
    reason = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.OPEN,
    )
    resolution = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    refund_amount = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    resolved_by = models.ForeignKey(
        "participants.Participant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    objects = DisputeQuerySet.as_manager()

    class Meta:
        db_table = "disputes"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="disputes_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(
                    status__in=[DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW]
                ),
                name="disputes_one_active_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(refund_amount__isnull=True) | models.Q(refund_amount__gt=0),
                name="disputes_refund_positive",
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DISPUTE_STATES

    def __str__(self) -> str:
        return f"Dispute {self.id} on {self.order_id} ({self.status})"


class DisputeEvidence(AppendOnlyModel):
    """Reference to a file supporting a dispute; blobs live elsewhere."""

    dispute = models.ForeignKey(
        "disputes.Dispute",
        on_delete=models.CASCADE,
        related_name="evidence",
    )
    uploaded_by = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="+",
    )
    uploaded_by_role = models.CharField(max_length=20, choices=ActorRole.choices)
    evidence_type = models.CharField(
        max_length=20,
        choices=EvidenceType.choices,
        default=EvidenceType.OTHER,
    )
    file_reference = models.CharField(max_length=500)
    filename = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")

    class Meta:
        db_table = "dispute_evidence"
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.filename} ({self.evidence_type})"


class DisputeMessage(AppendOnlyModel):
    """One entry of a dispute's thread.

    ``sender`` is ``None`` for messages written by the system.
    """

    dispute = models.ForeignKey(
        "disputes.Dispute",
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        "participants.Participant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    sender_role = models.CharField(max_length=20, choices=ActorRole.choices)
    content = models.TextField()
    message_type = models.CharField(
        max_length=20,
        choices=MessageType.choices,
        default=MessageType.MESSAGE,
    )
    is_internal = models.BooleanField(default=False)

    class Meta:
        db_table = "dispute_messages"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["dispute", "created_at"], name="dm_dispute_created_idx"),
        ]

    def __str__(self) -> str:
        return f"[{self.message_type}] {self.sender_role}: {self.content[:40]}"
