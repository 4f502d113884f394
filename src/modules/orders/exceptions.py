"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each one
is a ``WorkflowError`` kind, so the API layer (Views) translates them
into the standard error response and HTTP status.
"""

from __future__ import annotations

from modules.core.errors import (
    Conflict,
    Forbidden,
    IllegalTransition,
    InvalidState,
    NotFound,
    ProofRequired,
    ValidationFailed,
)


class OrderNotFound(NotFound):
    """The requested order does not exist or has been soft-deleted."""


class OrderAccessDenied(Forbidden):
    """The actor is neither the buyer, an involved producer, nor an admin."""


class IllegalOrderTransition(IllegalTransition):
    """The transition is not in the delivery-status table for this role."""


class OrderConflict(Conflict):
    """The order status changed since it was read."""


class DeliveryProofRequired(ProofRequired):
    """Marking an order DELIVERED requires a delivery proof reference."""


class InvalidOrderInput(ValidationFailed):
    """The order request is malformed."""


class InvalidRefund(ValidationFailed):
    """The refund amount is not positive or exceeds the refundable total."""


class PaymentNotRefundable(InvalidState):
    """The payment is not in a state a refund can start from."""


class PaymentAlreadyFinal(InvalidState):
    """The payment already left PENDING; gateway updates are ignored."""


class SplitInvariantError(Exception):
    """Payout arithmetic does not add up to the order total.

    Fatal: it blocks anchoring and is never retried automatically.
    """
