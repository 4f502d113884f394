"""Participant repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.participants.models import Participant


class IParticipantRepository(IRepository["Participant"]):
    @abstractmethod
    def get_by_user(self, user: Any) -> Optional[Participant]:
        """Return the active participant profile of a Django user."""
