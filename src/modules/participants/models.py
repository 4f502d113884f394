"""Marketplace participants.

A ``Participant`` is the marketplace profile attached to an authenticated
Django user.  Its ``role`` decides which workflow operations the user may
perform:

- BUYER places and cancels orders, pays, and raises disputes.
- PRODUCER fulfils orders that contain its products and receives payouts.
- ADMIN arbitrates disputes and may recover cancelled orders.

``SYSTEM`` is never assigned to a participant; it tags history entries
written by the payment and ledger reconcilers.
"""

from __future__ import annotations

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ActorRole(models.TextChoices):
    BUYER = "BUYER", "Buyer"
    PRODUCER = "PRODUCER", "Producer"
    ADMIN = "ADMIN", "Admin"
    SYSTEM = "SYSTEM", "System"


PARTICIPANT_ROLES = (ActorRole.BUYER, ActorRole.PRODUCER, ActorRole.ADMIN)


class Participant(BaseModel):
    """Marketplace profile of a user (one per user)."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="participant",
    )
    role = models.CharField(max_length=20, choices=ActorRole.choices)
    display_name = models.CharField(max_length=255)
    business_name = models.CharField(max_length=255, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "participants"
        ordering = ["display_name"]
        indexes = [
            models.Index(fields=["role"], name="participants_role_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(role__in=[r.value for r in PARTICIPANT_ROLES]),
                name="participants_role_assignable",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.role not in PARTICIPANT_ROLES:
            raise ValidationError({"role": "SYSTEM cannot be assigned to a participant."})

    def __str__(self) -> str:
        return f"{self.display_name} ({self.role})"
