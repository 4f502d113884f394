"""Payout domain exceptions."""

from __future__ import annotations

from modules.core.errors import (
    Conflict,
    Forbidden,
    IllegalTransition,
    NotFound,
    ValidationFailed,
)


class PayoutNotFound(NotFound):
    """The requested payout does not exist."""


class IllegalPayoutTransition(IllegalTransition):
    """The payout cannot move to the requested status from its current one."""


class PayoutConflict(Conflict):
    """The payout status changed since it was read."""


class InvalidPayoutInput(ValidationFailed):
    """The payout request is malformed."""


class PayoutAccessDenied(Forbidden):
    """The payout belongs to another producer."""
