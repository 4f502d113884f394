"""Workflow error taxonomy shared by every module.

Each module declares its own exceptions in ``exceptions.py`` as subclasses
of these kinds.  Services raise them; views translate them into HTTP
responses with ``error_response``.  Logging is only a side channel: a
caller learns about a failure from the exception, never from a log line.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from rest_framework import status
from rest_framework.response import Response


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    PROOF_REQUIRED = "PROOF_REQUIRED"
    DISPUTE_CLOSED = "DISPUTE_CLOSED"
    EXTERNAL_UNAVAILABLE = "EXTERNAL_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ILLEGAL_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.PROOF_REQUIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.DISPUTE_CLOSED: status.HTTP_409_CONFLICT,
    ErrorKind.EXTERNAL_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}

# Only these kinds may be retried automatically: CONFLICT by the caller after
# re-reading state, EXTERNAL_UNAVAILABLE by the background reconciler.
RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {ErrorKind.CONFLICT, ErrorKind.EXTERNAL_UNAVAILABLE}
)


class WorkflowError(Exception):
    """Base class for every domain error reported to a caller."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str = "", *, attr: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.kind.value)
        self.attr = attr

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ValidationFailed(WorkflowError):
    """Malformed input."""

    kind = ErrorKind.VALIDATION


class IllegalTransition(WorkflowError):
    """The requested transition is not allowed."""

    kind = ErrorKind.ILLEGAL_TRANSITION


class Conflict(WorkflowError):
    """The record changed since it was read; re-read and retry."""

    kind = ErrorKind.CONFLICT


class InvalidState(WorkflowError):
    """The operation does not apply to the current lifecycle stage."""

    kind = ErrorKind.INVALID_STATE


class ProofRequired(WorkflowError):
    """A delivery proof reference is required."""

    kind = ErrorKind.PROOF_REQUIRED


class DisputeClosed(WorkflowError):
    """The dispute is closed."""

    kind = ErrorKind.DISPUTE_CLOSED


class ExternalUnavailable(WorkflowError):
    """An external system is unreachable."""

    kind = ErrorKind.EXTERNAL_UNAVAILABLE


class NotFound(WorkflowError):
    """The requested resource does not exist."""

    kind = ErrorKind.NOT_FOUND


class Forbidden(WorkflowError):
    """The actor's role or ownership does not permit this operation."""

    kind = ErrorKind.FORBIDDEN


def error_body(kind: str, detail: str, attr: Optional[str] = None, *, server: bool = False) -> dict:
    return {
        "type": "server_error" if server else "client_error",
        "errors": [{"code": kind, "detail": detail, "attr": attr}],
    }


def error_response(exc: WorkflowError) -> Response:
    """Translate a domain error into the standard error response."""
    return Response(
        error_body(
            exc.kind.value,
            str(exc),
            exc.attr,
            server=exc.http_status >= 500,
        ),
        status=exc.http_status,
    )
