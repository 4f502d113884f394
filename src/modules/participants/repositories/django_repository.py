"""Django ORM implementation of the Participant repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError
from django.db.models import QuerySet

from modules.participants.models import Participant
from modules.participants.repositories.interfaces import IParticipantRepository


class ParticipantDjangoRepository(IParticipantRepository):
    """Concrete Participant repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Participant]:
        try:
            return Participant.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_user(self, user: Any) -> Optional[Participant]:
        if user is None or not getattr(user, "is_authenticated", False):
            return None
        return Participant.objects.filter(user_id=user.pk, is_active=True).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Participant.objects.select_related("user")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def save(self, entity: Participant) -> Participant:
        entity.full_clean()
        entity.save()
        return entity
