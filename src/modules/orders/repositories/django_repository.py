"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Status changes never lock the order row: each axis is written with a
conditional ``UPDATE ... WHERE delivery_status = <expected>`` (or
``payment_status``), and zero affected rows tells the service that a
concurrent writer got there first.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from modules.core.outbox import record_domain_events
from modules.orders.models import Order, OrderItem, OrderPayout, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.splits import ProducerPayout
from modules.participants.actors import Actor
from modules.participants.models import ActorRole

logger = structlog.get_logger(__name__)

_ORDER_RELATIONS = (
    "items__snapshot__shares",
    "status_history",
)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` keys:
        - ``buyer_id`` (required)
        - ``shipping_address`` (required): plain dict copied onto the order
        - ``items`` (required): list of dicts with ``snapshot`` and ``quantity``
        - ``idempotency_key`` (optional)
        - ``notes`` (optional)
        """
        order = Order(
            buyer_id=data["buyer_id"],
            shipping_address=dict(data["shipping_address"]),
            idempotency_key=data.get("idempotency_key"),
            notes=data.get("notes", ""),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            snapshot = item_data["snapshot"]
            item = OrderItem(
                order=order,
                snapshot=snapshot,
                quantity=item_data["quantity"],
                unit_price=snapshot.unit_price,
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount", "updated_at"])

        logger.bind(order_id=str(order.id), item_count=len(items)).info(
            "order.persisted"
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _base_queryset(self) -> QuerySet:
        return (
            Order.objects.alive()
            .select_related("buyer")
            .prefetch_related(*_ORDER_RELATIONS)
        )

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Used where a whole aggregate must be serialised (opening a dispute),
        not for status transitions.  Returns ``None`` for invalid IDs.
        """
        try:
            return Order.objects.alive().select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._base_queryset().filter(idempotency_key=key).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Order.objects.alive().select_related("buyer")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def visible_to(self, actor: Actor) -> QuerySet:
        """Buyers see their orders, producers the orders they take part in."""
        queryset = self.list()
        if actor.role == ActorRole.ADMIN:
            return queryset
        if actor.role == ActorRole.BUYER:
            return queryset.filter(buyer_id=actor.id)
        if actor.role == ActorRole.PRODUCER:
            return queryset.involving_producer(actor.id)
        return queryset.none()

    def is_producer_involved(self, order_id: UUID, producer_id: UUID) -> bool:
        return (
            Order.objects.filter(id=order_id)
            .involving_producer(producer_id)
            .exists()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract) + outbox
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and move its domain events into the outbox."""
        if entity._state.adding:
            entity.save()
        event_count = record_domain_events(entity, topic="orders")
        logger.info("order.saved", order_id=str(entity.id), event_count=event_count)
        return entity

    # ------------------------------------------------------------------
    # Compare-and-set writes
    # ------------------------------------------------------------------

    def compare_and_set_delivery(
        self,
        order_id: UUID,
        expected: str,
        new: str,
        delivery_proof: Optional[str] = None,
    ) -> bool:
        changes: Dict[str, Any] = {"delivery_status": new, "updated_at": timezone.now()}
        if delivery_proof is not None:
            changes["delivery_proof"] = delivery_proof
        updated = Order.objects.filter(id=order_id, delivery_status=expected).update(
            **changes
        )
        return updated == 1

    def compare_and_set_payment(
        self,
        order_id: UUID,
        expected: str,
        new: str,
        expected_refunded: Optional[Decimal] = None,
        refunded_amount: Optional[Decimal] = None,
    ) -> bool:
        conditions: Dict[str, Any] = {"id": order_id, "payment_status": expected}
        changes: Dict[str, Any] = {"payment_status": new, "updated_at": timezone.now()}
        if expected_refunded is not None:
            conditions["refunded_amount"] = expected_refunded
        if refunded_amount is not None:
            changes["refunded_amount"] = refunded_amount
        return Order.objects.filter(**conditions).update(**changes) == 1

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: UUID,
        axis: str,
        from_status: Optional[str],
        to_status: str,
        actor: Actor,
        reason: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory(
            order_id=order_id,
            axis=axis,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor.id,
            actor_role=actor.role,
            reason=reason,
        )
        history.save()

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            axis=axis,
            from_status=from_status,
            to_status=to_status,
            actor_role=actor.role,
        )
        return history

    def get_history(self, order_id: UUID) -> List[OrderStatusHistory]:
        return list(
            OrderStatusHistory.objects.filter(order_id=order_id).order_by(
                "created_at", "id"
            )
        )

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    @transaction.atomic
    def save_payouts(
        self, order_id: UUID, payouts: Iterable[ProducerPayout]
    ) -> List[OrderPayout]:
        for payout in payouts:
            OrderPayout.objects.get_or_create(
                order_id=order_id,
                producer_id=payout.producer_id,
                defaults={
                    "gross_share": payout.gross_share,
                    "commission": payout.commission,
                    "net_payout": payout.net_payout,
                },
            )
        return self.get_payouts(order_id)

    def get_payouts(self, order_id: UUID) -> List[OrderPayout]:
        return list(OrderPayout.objects.filter(order_id=order_id).order_by("producer_id"))

    # ------------------------------------------------------------------
    # Ledger bookkeeping
    # ------------------------------------------------------------------

    @transaction.atomic
    def next_anchor_attempt(self, order_id: UUID) -> int:
        Order.objects.filter(id=order_id).update(anchor_attempt=F("anchor_attempt") + 1)
        return (
            Order.objects.filter(id=order_id)
            .values_list("anchor_attempt", flat=True)
            .get()
        )

    def set_ledger_state(self, order_id: UUID, recorded: bool, error: Optional[str]) -> None:
        Order.objects.filter(id=order_id).update(
            ledger_recorded=recorded,
            ledger_error=error,
            updated_at=timezone.now(),
        )
