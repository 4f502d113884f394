"""Dispute repositories package."""

from modules.disputes.repositories.django_repository import DisputeDjangoRepository
from modules.disputes.repositories.interfaces import IDisputeRepository

__all__ = ["DisputeDjangoRepository", "IDisputeRepository"]
