"""Ledger exceptions."""

from __future__ import annotations

from modules.core.errors import ExternalUnavailable


class LedgerUnavailable(ExternalUnavailable):
    """The ledger gateway is unreachable, timed out or answered 5xx.

    Retried by the anchoring task with exponential backoff.
    """


class LedgerRejected(ExternalUnavailable):
    """The ledger gateway refused the submission (4xx); not retried."""
