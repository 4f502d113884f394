"""Actor resolution and role permissions for DRF views."""

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission
from rest_framework.request import Request

from modules.participants.actors import Actor
from modules.participants.exceptions import MissingParticipantProfile
from modules.participants.models import ActorRole
from modules.participants.repositories.django_repository import (
    ParticipantDjangoRepository,
)


def resolve_actor(request: Request) -> Optional[Actor]:
    """Return the request's actor, cached on the request object."""
    cached = getattr(request, "_workflow_actor", None)
    if cached is not None:
        return cached
    participant = ParticipantDjangoRepository().get_by_user(request.user)
    if participant is None:
        return None
    actor = Actor.from_participant(participant)
    request._workflow_actor = actor
    return actor


def get_actor(request: Request) -> Actor:
    actor = resolve_actor(request)
    if actor is None:
        raise MissingParticipantProfile()
    return actor


class IsParticipant(BasePermission):
    """Authenticated user with an active participant profile."""

    message = "An active marketplace participant profile is required."

    def has_permission(self, request, view) -> bool:
        return resolve_actor(request) is not None


class IsAdminParticipant(IsParticipant):
    message = "Only marketplace administrators may perform this action."

    def has_permission(self, request, view) -> bool:
        actor = resolve_actor(request)
        return actor is not None and actor.role == ActorRole.ADMIN
