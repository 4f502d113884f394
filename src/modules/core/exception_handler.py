"""DRF exception handler producing the standard error body.

Every error, whether raised by DRF (auth, parsing, serializer validation)
or by a service, is rendered as::

    {"type": "client_error", "errors": [{"code": ..., "detail": ..., "attr": ...}]}
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

import structlog
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.views import exception_handler

from modules.core.errors import ErrorKind, WorkflowError, error_response

logger = structlog.get_logger(__name__)

# DRF errors carry field-level codes ("required", "invalid"); the standard
# body reports the workflow error kind instead where one applies.
_KIND_BY_STATUS: Dict[int, str] = {
    400: ErrorKind.VALIDATION.value,
    403: ErrorKind.FORBIDDEN.value,
    404: ErrorKind.NOT_FOUND.value,
    409: ErrorKind.CONFLICT.value,
}


def standardized_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, WorkflowError):
        logger.warning("api.workflow_error", code=exc.kind.value, detail=str(exc))
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    full_details = exc.get_full_details() if hasattr(exc, "get_full_details") else {
        "message": str(exc),
        "code": "error",
    }
    response.data = {
        "type": "server_error" if response.status_code >= 500 else "client_error",
        "errors": [
            {**error, "code": _KIND_BY_STATUS.get(response.status_code, error["code"])}
            for error in _flatten(full_details)
        ],
    }
    return response


def _flatten(details: Any, attr: Optional[str] = None) -> Iterator[Dict[str, Any]]:
    if isinstance(details, list):
        for item in details:
            yield from _flatten(item, attr)
    elif isinstance(details, dict) and set(details) == {"message", "code"}:
        yield {"code": details["code"], "detail": str(details["message"]), "attr": attr}
    elif isinstance(details, dict):
        for key, value in details.items():
            if key in (api_settings.NON_FIELD_ERRORS_KEY, "detail"):
                child = attr
            else:
                child = key if attr is None else f"{attr}.{key}"
            yield from _flatten(value, child)
