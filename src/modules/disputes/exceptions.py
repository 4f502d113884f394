"""Dispute domain exceptions."""

from __future__ import annotations

from modules.core.errors import (
    Conflict,
    DisputeClosed,
    Forbidden,
    IllegalTransition,
    InvalidState,
    NotFound,
    ValidationFailed,
)


class DisputeNotFound(NotFound):
    """The requested dispute does not exist."""


class DisputeAccessDenied(Forbidden):
    """The actor takes no part in the disputed order."""


class OrderNotDisputable(InvalidState):
    """The order has not progressed past PENDING; there is nothing to dispute."""


class ActiveDisputeExists(InvalidState):
    """The order already has an OPEN or UNDER_REVIEW dispute."""


class DisputeIsClosed(DisputeClosed):
    """The dispute reached a terminal state and accepts no further changes."""


class IllegalDisputeTransition(IllegalTransition):
    """The dispute status change is not allowed for this actor."""


class DisputeConflict(Conflict):
    """The dispute status changed since it was read."""


class InvalidDisputeInput(ValidationFailed):
    """The dispute request is malformed."""


class InternalMessageForbidden(Forbidden):
    """Only administrators may post internal messages."""
