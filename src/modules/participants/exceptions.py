"""Participant exceptions."""

from __future__ import annotations

from modules.core.errors import Forbidden


class MissingParticipantProfile(Forbidden):
    """The authenticated user has no active marketplace profile."""


class RoleNotPermitted(Forbidden):
    """The actor's role may not perform this operation."""
