"""The acting principal of every workflow operation."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.participants.models import ActorRole, Participant


class Actor(BaseModel):
    """Who performs an operation: a participant id plus its role.

    ``id`` is ``None`` only for the SYSTEM actor used by reconcilers.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_buyer(self) -> bool:
        return self.role == ActorRole.BUYER

    @property
    def is_producer(self) -> bool:
        return self.role == ActorRole.PRODUCER

    @classmethod
    def system(cls) -> Actor:
        return cls(role=ActorRole.SYSTEM)

    @classmethod
    def from_participant(cls, participant: Participant) -> Actor:
        return cls(id=participant.id, role=ActorRole(participant.role))
