"""Ledger Anchoring Reconciler.

Anchors a fingerprint of each settled order on the external ledger and
verifies it later.  It runs in background workers, never inside the
request that settled the order, and is safe to invoke any number of times:

- ``anchor_attempt`` on the order only grows; a task carrying an older
  attempt number is a stale retry and does nothing.
- The ``LedgerRecord`` one-to-one constraint lets exactly one concurrent
  run persist a record; the ledger gateway deduplicates submissions by
  order id.
- Nothing is held locked while talking to the ledger: the order is read
  and payouts persisted in one transaction, the submission happens outside
  any transaction, and the record is written in a second one.

A split invariant violation is fatal: it is stored in ``ledger_error``
and the order is never anchored with inconsistent figures.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import UUID

import structlog
from django.db import IntegrityError, transaction

from modules.ledger.client import LedgerClient, build_ledger_client
from modules.ledger.exceptions import LedgerRejected, LedgerUnavailable
from modules.orders.constants import HistoryAxis
from modules.orders.exceptions import OrderNotFound, SplitInvariantError
from modules.orders.models import SPLIT_ERROR_PREFIX
from modules.orders.splits import SplitResult, compute_shares, lines_from_order
from modules.participants.actors import Actor

if TYPE_CHECKING:
    from modules.ledger.repositories.interfaces import ILedgerRepository
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

ANCHORED_STATUS = "ANCHORED"


class AnchorKind(str, Enum):
    SUBMITTED = "SUBMITTED"
    ALREADY_ANCHORED = "ALREADY_ANCHORED"
    DEFERRED = "DEFERRED"


@dataclass(frozen=True)
class AnchorOutcome:
    kind: AnchorKind
    reason: str = ""
    retryable: bool = False
    external_reference: Optional[str] = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIABLE = "unverifiable"
    PENDING = "pending"


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    detail: str = ""


def settlement_fingerprint(
    order: Order, payment_reference: Optional[str], split: SplitResult
) -> str:
    """SHA-256 over the canonical JSON form of the order's settlement."""
    content = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "total": str(split.order_total),
        "commission": str(split.total_commission),
        "payment_reference": payment_reference,
        "payouts": [
            [str(p.producer_id), str(p.gross_share), str(p.commission), str(p.net_payout)]
            for p in split.payouts
        ],
    }
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class LedgerReconciler:
    def __init__(
        self,
        ledger_repository: ILedgerRepository,
        order_repository: IOrderRepository,
        client: Optional[LedgerClient] = None,
    ) -> None:
        self._ledger_repo = ledger_repository
        self._order_repo = order_repository
        self._client = client

    @property
    def client(self) -> LedgerClient:
        if self._client is None:
            self._client = build_ledger_client()
        return self._client

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, order_id: UUID, dispatch: Callable[[str, int], Any]) -> int:
        """Claim the next anchor attempt and dispatch it after commit."""
        attempt = self._order_repo.next_anchor_attempt(order_id)
        transaction.on_commit(lambda: dispatch(str(order_id), attempt))
        logger.info("ledger.anchor_scheduled", order_id=str(order_id), attempt=attempt)
        return attempt

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------

    def anchor(self, order_id: Any, attempt: Optional[int] = None) -> AnchorOutcome:
        """Anchor the order's settlement on the ledger at most once.

        Raises:
            OrderNotFound: the order does not exist.
        """
        log = logger.bind(order_id=str(order_id), attempt=attempt)

        with transaction.atomic():
            order = self._order_repo.get_by_id(str(order_id))
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found.")

            if self._ledger_repo.get_for_order(order.id):
                log.info("ledger.already_anchored")
                return AnchorOutcome(AnchorKind.ALREADY_ANCHORED)
            if attempt is not None and attempt < order.anchor_attempt:
                log.info("ledger.anchor_superseded", current_attempt=order.anchor_attempt)
                return AnchorOutcome(AnchorKind.DEFERRED, "superseded")
            if not order.is_anchorable:
                log.info(
                    "ledger.anchor_deferred",
                    reason="not settled",
                    delivery_status=order.delivery_status,
                    payment_status=order.payment_status,
                )
                return AnchorOutcome(AnchorKind.DEFERRED, "not settled")

            try:
                split = compute_shares(lines_from_order(order), order_total=order.total_amount)
            except SplitInvariantError as exc:
                log.error("ledger.split_invariant_violated", error=str(exc))
                self._order_repo.set_ledger_state(
                    order.id, recorded=False, error=f"{SPLIT_ERROR_PREFIX} {exc}"
                )
                return AnchorOutcome(AnchorKind.DEFERRED, "split invariant violated")

            self._order_repo.save_payouts(order.id, split.payouts)
            payment_reference = self._ledger_repo.payment_reference_for(order.id)
            fingerprint = settlement_fingerprint(order, payment_reference, split)

        try:
            receipt = self.client.submit(order.id, fingerprint, payment_reference)
        except LedgerUnavailable as exc:
            log.warning("ledger.anchor_deferred", reason="ledger unavailable", error=str(exc))
            self._order_repo.set_ledger_state(order.id, recorded=False, error=str(exc))
            return AnchorOutcome(AnchorKind.DEFERRED, "ledger unavailable", retryable=True)
        except LedgerRejected as exc:
            log.error("ledger.anchor_rejected", error=str(exc))
            self._order_repo.set_ledger_state(order.id, recorded=False, error=str(exc))
            return AnchorOutcome(AnchorKind.DEFERRED, "ledger rejected")

        try:
            with transaction.atomic():
                record = self._ledger_repo.create_record(order.id, fingerprint, receipt)
                self._order_repo.set_ledger_state(order.id, recorded=True, error=None)
                self._order_repo.add_history(
                    order_id=order.id,
                    axis=HistoryAxis.LEDGER,
                    from_status=None,
                    to_status=ANCHORED_STATUS,
                    actor=Actor.system(),
                    reason=f"Anchored as {receipt.external_reference}",
                )
        except IntegrityError:
            log.info("ledger.already_anchored", race=True)
            return AnchorOutcome(AnchorKind.ALREADY_ANCHORED)

        log.info(
            "ledger.anchored",
            external_reference=record.external_reference,
            block_number=record.block_number,
        )
        return AnchorOutcome(
            AnchorKind.SUBMITTED, external_reference=record.external_reference
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, order_id: UUID) -> VerificationResult:
        """Compare the stored record with what the ledger holds.

        Never reports ``verified`` without a matching ledger entry.
        """
        record = self._ledger_repo.get_for_order(order_id)
        if record is None:
            return VerificationResult(VerificationStatus.PENDING, "Order not anchored yet.")

        try:
            entry = self.client.lookup(order_id)
        except (LedgerUnavailable, LedgerRejected) as exc:
            logger.warning("ledger.verify_failed", order_id=str(order_id), error=str(exc))
            return VerificationResult(VerificationStatus.UNVERIFIABLE, "Ledger unavailable.")

        if entry is None:
            return VerificationResult(
                VerificationStatus.UNVERIFIABLE, "Ledger has no entry for this order."
            )
        if (
            entry.external_reference != record.external_reference
            or entry.fingerprint != record.fingerprint
        ):
            logger.error(
                "ledger.verify_mismatch",
                order_id=str(order_id),
                stored_reference=record.external_reference,
                ledger_reference=entry.external_reference,
            )
            return VerificationResult(
                VerificationStatus.UNVERIFIABLE, "Ledger entry does not match the stored record."
            )
        return VerificationResult(VerificationStatus.VERIFIED, record.external_reference)
