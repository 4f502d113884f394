"""Ledger gateway client.

``LedgerClient`` is the contract the reconciler depends on;
``HttpLedgerClient`` talks JSON over HTTP to a ledger gateway service that
fronts the distributed ledger:

- ``POST {base}/records``: submit an order fingerprint.  The order id is
  sent as ``Idempotency-Key`` so a repeated submission is not recorded
  twice; ``409`` answers with the existing record.
- ``GET {base}/records/{order_id}``: look the record up (``404`` if none).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import requests
import structlog
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.dateparse import parse_datetime

from modules.ledger.exceptions import LedgerRejected, LedgerUnavailable

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LedgerReceipt:
    external_reference: str
    block_number: Optional[int]
    confirmed_at: datetime


@dataclass(frozen=True)
class LedgerEntry:
    order_id: str
    fingerprint: str
    external_reference: str
    block_number: Optional[int] = None


class LedgerClient(ABC):
    @abstractmethod
    def submit(
        self, order_id: UUID, fingerprint: str, payment_reference: Optional[str]
    ) -> LedgerReceipt:
        """Record the fingerprint; raises ``LedgerUnavailable`` on outages."""

    @abstractmethod
    def lookup(self, order_id: UUID) -> Optional[LedgerEntry]:
        """Fetch what the ledger holds for the order, ``None`` if nothing."""


class HttpLedgerClient(LedgerClient):
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("ledger.request_failed", method=method, url=url, error=str(exc))
            raise LedgerUnavailable(f"Ledger unreachable: {exc}") from exc
        if response.status_code >= 500:
            logger.warning(
                "ledger.server_error", method=method, url=url, status=response.status_code
            )
            raise LedgerUnavailable(f"Ledger answered {response.status_code}.")
        return response

    def submit(
        self, order_id: UUID, fingerprint: str, payment_reference: Optional[str]
    ) -> LedgerReceipt:
        response = self._request(
            "POST",
            "/records",
            json={
                "order_id": str(order_id),
                "fingerprint": fingerprint,
                "payment_reference": payment_reference,
            },
            headers={"Idempotency-Key": str(order_id)},
        )
        if response.status_code not in (200, 201, 409):
            raise LedgerRejected(
                f"Ledger rejected order {order_id}: {response.status_code} {response.text[:200]}"
            )
        body = _json_body(response, ("external_reference",))
        return _receipt_from(body)

    def lookup(self, order_id: UUID) -> Optional[LedgerEntry]:
        response = self._request("GET", f"/records/{order_id}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise LedgerRejected(f"Ledger lookup failed: {response.status_code}")
        body = _json_body(response, ("order_id", "fingerprint", "external_reference"))
        return LedgerEntry(
            order_id=str(body["order_id"]),
            fingerprint=body["fingerprint"],
            external_reference=body["external_reference"],
            block_number=body.get("block_number"),
        )


def _json_body(response: requests.Response, required: tuple[str, ...]) -> Dict[str, Any]:
    """Decoded body of a successful answer carrying every ``required`` key.

    A gateway that answers 2xx with something else (an HTML error page from
    a proxy, a truncated body) is treated as unavailable so the anchoring
    task retries and the order keeps a visible ``ledger_error``.
    """
    try:
        body = response.json()
    except ValueError as exc:
        logger.warning("ledger.malformed_response", status=response.status_code)
        raise LedgerUnavailable(
            f"Ledger answered {response.status_code} with a non-JSON body."
        ) from exc
    missing = [key for key in required if not isinstance(body, dict) or key not in body]
    if missing:
        logger.warning(
            "ledger.malformed_response", status=response.status_code, missing=missing
        )
        raise LedgerUnavailable(
            f"Ledger answered {response.status_code} without {', '.join(missing)}."
        )
    return body


def _receipt_from(body: Dict[str, Any]) -> LedgerReceipt:
    try:
        confirmed_at = parse_datetime(str(body.get("confirmed_at") or ""))
    except ValueError:
        confirmed_at = None
    confirmed_at = confirmed_at or datetime.now(timezone.utc)
    return LedgerReceipt(
        external_reference=body["external_reference"],
        block_number=body.get("block_number"),
        confirmed_at=confirmed_at,
    )


def build_ledger_client() -> LedgerClient:
    """Client configured from settings; a missing endpoint is a setup error."""
    if not settings.LEDGER_API_URL:
        raise ImproperlyConfigured("LEDGER_API_URL must be set.")
    return HttpLedgerClient(
        base_url=settings.LEDGER_API_URL,
        token=settings.LEDGER_API_TOKEN,
        timeout=settings.LEDGER_TIMEOUT_SECONDS,
    )
