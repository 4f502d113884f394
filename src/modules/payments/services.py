"""Payment service and Payment Reconciler.

Gateway callbacks are delivered at least once, possibly out of order and
concurrently with buyer/producer activity on the delivery axis.  The
reconciler:

1. drops a callback whose (reference, status) pair was already stored;
2. stores it (the unique constraint decides concurrent duplicates);
3. applies it to the order's payment axis with the same compare-and-set
   discipline as every other status write, and only out of PENDING;
4. records the outcome on the stored callback.

An unexpected failure in step 3 is logged with its traceback and the
callback is kept as NEEDS_RECONCILIATION for an operator; the gateway is
still acknowledged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Tuple

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.orders.constants import DeliveryStatus, PaymentStatus
from modules.orders.exceptions import OrderConflict, PaymentAlreadyFinal
from modules.participants.actors import Actor
from modules.participants.exceptions import RoleNotPermitted
from modules.participants.models import ActorRole
from modules.payments.constants import (
    GATEWAY_STATUS_MAP,
    REFERENCE_MAX_LENGTH,
    GatewayEventOutcome,
)
from modules.payments.dtos import GatewayAck
from modules.payments.exceptions import OrderNotPayable

if TYPE_CHECKING:
    from modules.orders.services import OrderService
    from modules.payments.dtos import GatewayEventDTO
    from modules.payments.models import PaymentReference
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentService:
    def __init__(self, payment_repository: IPaymentRepository, order_service: OrderService) -> None:
        self._payment_repo = payment_repository
        self._orders = order_service

    @transaction.atomic
    def create_reference(self, order_id: Any, actor: Actor) -> PaymentReference:
        """Issue a gateway reference (``tx_ref``) for the buyer's pending payment.

        Raises:
            RoleNotPermitted: the actor is not a buyer.
            OrderNotFound, OrderAccessDenied: from the order lookup.
            OrderNotPayable: payment left PENDING or the order was cancelled.
        """
        if actor.role != ActorRole.BUYER:
            raise RoleNotPermitted("Only the buyer can pay for an order.")
        order = self._orders.get_order(order_id, actor)
        if order.payment_status != PaymentStatus.PENDING:
            raise OrderNotPayable(f"Payment of order {order.id} is already {order.payment_status}.")
        if order.delivery_status == DeliveryStatus.CANCELLED:
            raise OrderNotPayable(f"Order {order.id} was cancelled.")

        millis = int(timezone.now().timestamp() * 1000)
        reference = f"ord-{str(order.id)[:8]}-{millis}"[:REFERENCE_MAX_LENGTH]
        payment_reference = self._payment_repo.create_reference(order.id, reference)
        logger.info("payment.reference_created", order_id=str(order.id), reference=reference)
        return payment_reference


class PaymentReconciler:
    def __init__(self, payment_repository: IPaymentRepository, order_service: OrderService) -> None:
        self._payment_repo = payment_repository
        self._orders = order_service

    @transaction.atomic
    def apply_gateway_event(self, dto: GatewayEventDTO) -> GatewayAck:
        """Apply one gateway callback at most once.  Never raises for domain outcomes."""
        log = logger.bind(reference=dto.reference, gateway_status=dto.status)

        existing = self._payment_repo.get_event(dto.reference, dto.status)
        if existing is not None:
            log.info("payment.gateway_event_duplicate", outcome=existing.outcome)
            return GatewayAck(
                reference=dto.reference,
                status=dto.status,
                outcome=existing.outcome,
                duplicate=True,
            )

        try:
            with transaction.atomic():
                event = self._payment_repo.record_event(dto)
        except IntegrityError:
            log.info("payment.gateway_event_duplicate", race=True)
            return GatewayAck(reference=dto.reference, status=dto.status, duplicate=True)

        try:
            with transaction.atomic():
                outcome, error_message = self._apply(dto)
        except Exception as exc:
            log.exception("payment.gateway_event_failed")
            outcome, error_message = GatewayEventOutcome.NEEDS_RECONCILIATION, str(exc)

        self._payment_repo.set_outcome(event.id, outcome, error_message)
        log.info("payment.gateway_event_applied", outcome=outcome, error=error_message or None)
        return GatewayAck(reference=dto.reference, status=dto.status, outcome=outcome)

    def _apply(self, dto: GatewayEventDTO) -> Tuple[str, str]:
        reference = self._payment_repo.get_reference(dto.reference)
        if reference is None:
            return GatewayEventOutcome.UNKNOWN_REFERENCE, "Unknown payment reference."

        target = GATEWAY_STATUS_MAP.get(dto.status)
        if target is None:
            return GatewayEventOutcome.IGNORED, f"Unhandled gateway status {dto.status!r}."

        order = reference.order
        if (
            target == PaymentStatus.CONFIRMED
            and dto.amount is not None
            and Decimal(dto.amount) != order.total_amount
        ):
            logger.warning(
                "payment.amount_mismatch",
                order_id=str(order.id),
                expected=str(order.total_amount),
                received=str(dto.amount),
            )
            return (
                GatewayEventOutcome.NEEDS_RECONCILIATION,
                f"Amount {dto.amount} does not match order total {order.total_amount}.",
            )

        try:
            self._orders.apply_payment_status(
                order.id,
                target,
                reason=f"Gateway {dto.status} for {reference.reference}",
            )
        except (PaymentAlreadyFinal, OrderConflict) as exc:
            return GatewayEventOutcome.REJECTED_TERMINAL, str(exc)

        if target == PaymentStatus.CONFIRMED:
            self._payment_repo.mark_reference_used(reference.id)
        return GatewayEventOutcome.APPLIED, ""
