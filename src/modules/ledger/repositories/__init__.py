"""Ledger repositories package."""

from modules.ledger.repositories.django_repository import LedgerDjangoRepository
from modules.ledger.repositories.interfaces import ILedgerRepository

__all__ = ["ILedgerRepository", "LedgerDjangoRepository"]
