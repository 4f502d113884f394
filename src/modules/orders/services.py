"""Order service layer (Use Cases).

Orchestrates order creation, the delivery-status state machine, payment
status updates and dispute refunds.  All write operations are atomic: the
service defines the unit-of-work boundary.

Business rules enforced:
- Only buyers place orders; stock is reserved under ``SELECT FOR UPDATE``
  with rows locked in primary-key order to avoid deadlocks.
- Products are frozen into snapshots whose producer shares sum to 100%.
- Delivery transitions follow ``allowed_transitions(role, status)`` and
  are written with a compare-and-set on the prior status.
- DELIVERED requires a delivery proof reference.
- Every accepted change on either axis appends one history entry.
- Reaching DELIVERED + payment CONFIRMED schedules ledger anchoring after
  commit (fire-and-forget) and writes an ``OrderSettled`` outbox event.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional
from uuid import UUID

import structlog

from django.db import transaction

from modules.catalog.exceptions import InactiveProduct, InsufficientStock, ProductNotFound
from modules.catalog.models import ProductStatus
from modules.orders.constants import (
    REFUNDABLE_PAYMENT_STATES,
    DeliveryStatus,
    HistoryAxis,
    PaymentStatus,
)
from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderPaymentStatusChanged,
    OrderRefunded,
    OrderSettled,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    DeliveryProofRequired,
    IllegalOrderTransition,
    InvalidOrderInput,
    InvalidRefund,
    OrderAccessDenied,
    OrderConflict,
    OrderNotFound,
    PaymentAlreadyFinal,
    PaymentNotRefundable,
)
from modules.orders.state_machine import allowed_transitions
from modules.participants.actors import Actor
from modules.participants.exceptions import RoleNotPermitted
from modules.participants.models import ActorRole

if TYPE_CHECKING:
    from modules.catalog.repositories.interfaces import IProductRepository
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order, OrderPayout, OrderStatusHistory
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

AnchorScheduler = Callable[[UUID], Any]


def _schedule_anchor(order_id: UUID) -> Any:
    from modules.ledger.tasks import schedule_anchor

    return schedule_anchor(order_id)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP).
    ``anchor_scheduler`` is called after commit when an order settles.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        anchor_scheduler: Optional[AnchorScheduler] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._anchor_scheduler = anchor_scheduler or _schedule_anchor

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO, actor: Actor) -> Order:
        """Create a new order with atomic stock reservation.

        Steps:
        1. Replay the order stored under the same idempotency key, if any.
        2. Lock the products (sorted by PK to avoid deadlocks), check they
           are active and in stock, deduct stock and snapshot them.
        3. Persist order + items; total comes from snapshot prices only.
        4. Record the initial history entry and the ``OrderCreated`` event.

        Raises:
            RoleNotPermitted: the actor is not a buyer.
            ProductNotFound: a product does not exist.
            InactiveProduct: a product is inactive.
            InsufficientStock: not enough stock.
            InvalidShareDistribution: co-producer shares do not sum to 100%.
        """
        if actor.role != ActorRole.BUYER:
            raise RoleNotPermitted("Only buyers can place orders.")

        log = logger.bind(buyer_id=str(actor.id))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                if existing.buyer_id != actor.id:
                    raise InvalidOrderInput(
                        "Idempotency-Key was already used by another buyer.",
                        attr="Idempotency-Key",
                    )
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                existing._idempotent_replay = True
                return existing

        products = self._product_repo.lock_for_sale(item.product_id for item in dto.items)
        repo_items = []
        for item_dto in sorted(dto.items, key=lambda i: str(i.product_id)):
            product = products.get(item_dto.product_id)
            if not product:
                raise ProductNotFound(f"Product {item_dto.product_id} not found.")
            if product.status != ProductStatus.ACTIVE:
                raise InactiveProduct(f"Product {product.sku} is inactive.")
            if product.stock_quantity < item_dto.quantity:
                raise InsufficientStock(
                    f"Product {product.sku}: requested {item_dto.quantity}, "
                    f"available {product.stock_quantity}."
                )

            self._product_repo.adjust_stock(product, -item_dto.quantity)
            log.info(
                "order.stock_reserved",
                product_id=str(product.id),
                quantity=item_dto.quantity,
                remaining=product.stock_quantity,
            )
            repo_items.append(
                {"snapshot": self._product_repo.snapshot(product), "quantity": item_dto.quantity}
            )

        order = self._order_repo.create(
            {
                "buyer_id": actor.id,
                "items": repo_items,
                "shipping_address": dto.shipping_address.model_dump(),
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
            }
        )
        self._order_repo.add_history(
            order_id=order.id,
            axis=HistoryAxis.DELIVERY,
            from_status=None,
            to_status=DeliveryStatus.PENDING,
            actor=actor,
            reason="Order created",
        )
        order.add_domain_event(OrderCreated(aggregate_id=order.id))
        self._order_repo.save(order)

        log.info("order.created", order_id=str(order.id), total=str(order.total_amount))
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def transition(
        self,
        order_id: UUID,
        requested_status: str,
        actor: Actor,
        reason: str = "",
        delivery_proof: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Order:
        """Move an order to ``requested_status`` on the delivery axis.

        The order row is not locked: the write is conditional on the status
        read here, so of two concurrent calls from the same prior status
        exactly one succeeds and the other raises ``OrderConflict``.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: actor is not the buyer / an involved producer.
            OrderConflict: ``expected_status`` is stale, or a concurrent
                transition won the compare-and-set.
            InvalidOrderInput: ``requested_status`` is not a delivery status.
            IllegalOrderTransition: not in the table for the actor's role.
            DeliveryProofRequired: DELIVERED without a proof reference.
            InsufficientStock: an admin recovery cannot re-reserve stock.
        """
        order = self._get_visible(order_id, actor)
        current = DeliveryStatus(order.delivery_status)
        log = logger.bind(
            order_id=str(order_id),
            current_status=current,
            requested_status=requested_status,
            actor_role=actor.role,
        )

        if expected_status is not None and expected_status != current:
            log.warning("order.stale_expected_status", expected_status=expected_status)
            raise OrderConflict(
                f"Order is {current}, not {expected_status}; re-read and retry."
            )

        try:
            target = DeliveryStatus(requested_status)
        except ValueError:
            raise InvalidOrderInput(
                f"Unknown delivery status {requested_status!r}.", attr="status"
            ) from None

        if target not in allowed_transitions(actor.role, current):
            log.warning("order.illegal_transition")
            raise IllegalOrderTransition(
                f"{actor.role} cannot move an order from {current} to {target}."
            )

        proof = delivery_proof or order.delivery_proof
        if target == DeliveryStatus.DELIVERED and not proof:
            log.warning("order.delivery_proof_missing")
            raise DeliveryProofRequired("A delivery proof reference is required.")

        written = self._order_repo.compare_and_set_delivery(
            order.id,
            expected=current,
            new=target,
            delivery_proof=proof if target == DeliveryStatus.DELIVERED else None,
        )
        if not written:
            log.warning("order.transition_conflict")
            raise OrderConflict("Order status changed concurrently; re-read and retry.")

        if target == DeliveryStatus.CANCELLED:
            self._release_stock(order)
        elif current == DeliveryStatus.CANCELLED:
            self._reserve_stock_again(order)

        self._order_repo.add_history(
            order_id=order.id,
            axis=HistoryAxis.DELIVERY,
            from_status=current,
            to_status=target,
            actor=actor,
            reason=reason,
        )

        order = self._order_repo.get_by_id(str(order.id))
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                from_status=current,
                to_status=target,
                actor_role=actor.role,
            )
        )
        if target == DeliveryStatus.CANCELLED:
            order.add_domain_event(OrderCancelled(aggregate_id=order.id))
        if order.is_settled:
            self._on_order_settled(order)
        self._order_repo.save(order)

        log.info("order.transitioned", new_status=target)
        return order

    def cancel_order(self, order_id: UUID, actor: Actor, reason: str = "") -> Order:
        """Buyer cancellation of a PENDING order; releases reserved stock.

        Raises:
            RoleNotPermitted: actor is not a buyer.
            IllegalOrderTransition: the order is no longer PENDING.
        """
        if actor.role != ActorRole.BUYER:
            raise RoleNotPermitted("Only the buyer can cancel through this endpoint.")
        return self.transition(
            order_id,
            DeliveryStatus.CANCELLED,
            actor,
            reason=reason or "Order cancelled by buyer",
        )

    @transaction.atomic
    def apply_payment_status(
        self,
        order_id: UUID,
        new_status: str,
        reason: str,
        actor: Optional[Actor] = None,
    ) -> Order:
        """Advance the payment axis out of PENDING (gateway confirmation or failure).

        Raises:
            OrderNotFound: order does not exist.
            PaymentAlreadyFinal: payment already left PENDING.
            OrderConflict: a concurrent update won the compare-and-set.
        """
        actor = actor or Actor.system()
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        current = order.payment_status
        if current != PaymentStatus.PENDING:
            raise PaymentAlreadyFinal(f"Payment of order {order_id} is already {current}.")

        if not self._order_repo.compare_and_set_payment(
            order.id, expected=current, new=new_status
        ):
            raise OrderConflict("Payment status changed concurrently.")

        self._order_repo.add_history(
            order_id=order.id,
            axis=HistoryAxis.PAYMENT,
            from_status=current,
            to_status=new_status,
            actor=actor,
            reason=reason,
        )

        order = self._order_repo.get_by_id(str(order.id))
        order.add_domain_event(
            OrderPaymentStatusChanged(
                aggregate_id=order.id, from_status=current, to_status=new_status
            )
        )
        if order.is_settled:
            self._on_order_settled(order)
        self._order_repo.save(order)

        logger.info(
            "order.payment_status_updated",
            order_id=str(order.id),
            from_status=current,
            to_status=new_status,
        )
        return order

    @transaction.atomic
    def apply_refund(
        self,
        order_id: UUID,
        amount: Decimal,
        actor: Actor,
        reason: str = "",
    ) -> Order:
        """Refund part or all of an order's payment.

        The payment status is re-read right before the conditional write,
        so a gateway event landing in between surfaces as a conflict rather
        than being overwritten.  Delivery status is never touched.

        Raises:
            OrderNotFound: order does not exist.
            InvalidRefund: amount is not positive or exceeds what is left.
            PaymentNotRefundable: payment is not CONFIRMED/PARTIALLY_REFUNDED.
            OrderConflict: payment changed concurrently.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidRefund("Refund amount must be greater than zero.", attr="refund_amount")

        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        current = order.payment_status
        if current not in REFUNDABLE_PAYMENT_STATES:
            raise PaymentNotRefundable(f"Cannot refund an order whose payment is {current}.")

        refunded_total = order.refunded_amount + amount
        if refunded_total > order.total_amount:
            raise InvalidRefund(
                f"Refund of {amount} exceeds the refundable {order.refundable_amount}.",
                attr="refund_amount",
            )
        new_status = (
            PaymentStatus.REFUNDED
            if refunded_total == order.total_amount
            else PaymentStatus.PARTIALLY_REFUNDED
        )

        if not self._order_repo.compare_and_set_payment(
            order.id,
            expected=current,
            new=new_status,
            expected_refunded=order.refunded_amount,
            refunded_amount=refunded_total,
        ):
            raise OrderConflict("Payment status changed concurrently; re-read and retry.")

        self._order_repo.add_history(
            order_id=order.id,
            axis=HistoryAxis.PAYMENT,
            from_status=current,
            to_status=new_status,
            actor=actor,
            reason=reason or f"Refund of {amount}",
        )

        order = self._order_repo.get_by_id(str(order.id))
        order.add_domain_event(
            OrderRefunded(
                aggregate_id=order.id,
                amount=str(amount),
                refunded_total=str(refunded_total),
            )
        )
        self._order_repo.save(order)

        logger.info(
            "order.refunded",
            order_id=str(order.id),
            amount=str(amount),
            payment_status=new_status,
        )
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, actor: Actor) -> Order:
        """Retrieve a single order the actor may see.

        Raises:
            OrderNotFound: if the order does not exist.
            OrderAccessDenied: if the actor has no part in the order.
        """
        return self._get_visible(order_id, actor)

    def list_orders(self, actor: Actor, filters: Optional[Dict[str, Any]] = None):
        """Orders visible to the actor, optionally filtered."""
        queryset = self._order_repo.visible_to(actor)
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_history(self, order_id: str, actor: Actor) -> List[OrderStatusHistory]:
        order = self._get_visible(order_id, actor)
        return self._order_repo.get_history(order.id)

    def get_payouts(self, order_id: str, actor: Actor) -> List[OrderPayout]:
        """Payouts of a settled order: all rows for admins, own row for producers."""
        if actor.role not in (ActorRole.ADMIN, ActorRole.PRODUCER):
            raise RoleNotPermitted("Only producers and admins can read payouts.")
        order = self._get_visible(order_id, actor)
        payouts = self._order_repo.get_payouts(order.id)
        if actor.role == ActorRole.PRODUCER:
            payouts = [p for p in payouts if p.producer_id == actor.id]
        return payouts

    def ensure_involved(self, order: Order, actor: Actor) -> None:
        """Raise ``OrderAccessDenied`` unless the actor takes part in the order."""
        if actor.role == ActorRole.ADMIN:
            return
        if actor.role == ActorRole.BUYER and order.buyer_id == actor.id:
            return
        if actor.role == ActorRole.PRODUCER and self._order_repo.is_producer_involved(
            order.id, actor.id
        ):
            return
        raise OrderAccessDenied(f"Order {order.id} does not involve this participant.")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_visible(self, order_id: Any, actor: Actor) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        self.ensure_involved(order, actor)
        return order

    def _release_stock(self, order: Order) -> None:
        """Return every item's quantity to its product (RN: stock is restored)."""
        for item in sorted(order.items.all(), key=lambda i: str(i.snapshot.product_id)):
            released = self._product_repo.release_stock(item.snapshot.product_id, item.quantity)
            logger.info(
                "order.stock_released",
                order_id=str(order.id),
                product_id=str(item.snapshot.product_id),
                quantity=item.quantity,
                released=released,
            )

    def _reserve_stock_again(self, order: Order) -> None:
        """Admin recovery of a cancelled order takes its stock back."""
        items = list(order.items.all())
        products = self._product_repo.lock_for_sale(
            item.snapshot.product_id for item in items if item.snapshot.product_id
        )
        for item in items:
            product = products.get(item.snapshot.product_id)
            if product is None or product.stock_quantity < item.quantity:
                raise InsufficientStock(
                    f"Cannot restore order {order.id}: {item.snapshot.sku} is out of stock."
                )
            self._product_repo.adjust_stock(product, -item.quantity)

    def _on_order_settled(self, order: Order) -> None:
        """Delivered and paid: record ``OrderSettled`` and hand off to anchoring.

        Anchoring runs after commit and never inside the caller's
        transaction; the outbox event covers a crash between the two.
        """
        order.add_domain_event(OrderSettled(aggregate_id=order.id))
        order_id = order.id
        transaction.on_commit(lambda: self._anchor_scheduler(order_id))
        logger.info("order.settled", order_id=str(order_id))
