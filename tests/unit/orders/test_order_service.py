"""Unit tests for ``OrderService``.

Covers:
- Creation: buyer only, stock reservation, snapshots, idempotency replay.
- Delivery transitions: table enforcement, delivery proof, stale
  ``expected_status`` and lost compare-and-set both surface as conflicts.
- Cancellation releases stock; admin recovery takes it back.
- Payment axis: gateway statuses only out of PENDING; refunds.
- Settlement schedules anchoring after commit and records ``OrderSettled``.
- Visibility rules for buyers and producers.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from modules.catalog.exceptions import InactiveProduct, InsufficientStock, ProductNotFound
from modules.catalog.models import ProductStatus
from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.core.models import OutboxEvent
from modules.orders.constants import DeliveryStatus, HistoryAxis, PaymentStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
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
from modules.orders.models import OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.actors import Actor
from modules.participants.exceptions import RoleNotPermitted

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_creates_order_from_snapshot_prices(self, place_order, buyer, product):
        order = place_order(buyer, [(product, 3)])

        assert order.delivery_status == DeliveryStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.total_amount == Decimal("300.00")
        item = order.items.get()
        assert item.snapshot.unit_price == Decimal("100.00")
        assert item.subtotal == Decimal("300.00")

    def test_reserves_stock(self, place_order, buyer, product):
        place_order(buyer, [(product, 4)])
        product.refresh_from_db()
        assert product.stock_quantity == 6

    def test_later_price_change_does_not_alter_order(self, place_order, buyer, product):
        order = place_order(buyer, [(product, 1)])
        product.price = Decimal("250.00")
        product.save()

        order.refresh_from_db()
        assert order.total_amount == Decimal("100.00")
        assert order.items.get().unit_price == Decimal("100.00")

    def test_initial_history_entry(self, place_order, buyer, product):
        order = place_order(buyer, [(product, 1)])
        entry = OrderStatusHistory.objects.get(order=order)
        assert entry.axis == HistoryAxis.DELIVERY
        assert entry.from_status is None
        assert entry.to_status == DeliveryStatus.PENDING
        assert entry.actor_id == buyer.id

    def test_records_order_created_event(self, place_order, buyer, product):
        order = place_order(buyer, [(product, 1)])
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderCreated"
        ).exists()

    def test_producer_cannot_place_orders(self, order_service, producer, product, shipping_address):
        dto = CreateOrderDTO(
            items=[CreateOrderItemDTO(product_id=product.id, quantity=1)],
            shipping_address=shipping_address,
        )
        with pytest.raises(RoleNotPermitted):
            order_service.create_order(dto, Actor.from_participant(producer))

    def test_insufficient_stock(self, place_order, buyer, product):
        with pytest.raises(InsufficientStock):
            place_order(buyer, [(product, 11)])
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_inactive_product(self, place_order, buyer, product):
        product.status = ProductStatus.INACTIVE
        product.save()
        with pytest.raises(InactiveProduct):
            place_order(buyer, [(product, 1)])

    def test_unknown_product(self, order_service, buyer, shipping_address):
        dto = CreateOrderDTO(
            items=[CreateOrderItemDTO(product_id=uuid4(), quantity=1)],
            shipping_address=shipping_address,
        )
        with pytest.raises(ProductNotFound):
            order_service.create_order(dto, Actor.from_participant(buyer))

    def test_idempotency_key_replays_order(self, place_order, buyer, product):
        first = place_order(buyer, [(product, 2)], idempotency_key="key-1")
        second = place_order(buyer, [(product, 2)], idempotency_key="key-1")

        assert second.id == first.id
        assert getattr(second, "_idempotent_replay", False) is True
        product.refresh_from_db()
        assert product.stock_quantity == 8

    def test_idempotency_key_of_another_buyer(self, place_order, buyer, other_buyer, product):
        place_order(buyer, [(product, 1)], idempotency_key="key-2")
        with pytest.raises(InvalidOrderInput):
            place_order(other_buyer, [(product, 1)], idempotency_key="key-2")


# ---------------------------------------------------------------------------
# Delivery transitions
# ---------------------------------------------------------------------------


class TestTransition:
    def test_producer_ships_pending_order(self, order_service, shared_order, producer, actor_of):
        order = order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))
        assert order.delivery_status == DeliveryStatus.SHIPPED

    def test_buyer_cannot_ship(self, order_service, shared_order, buyer, actor_of):
        with pytest.raises(IllegalOrderTransition):
            order_service.transition(shared_order.id, "SHIPPED", actor_of(buyer))
        shared_order.refresh_from_db()
        assert shared_order.delivery_status == DeliveryStatus.PENDING

    def test_co_producer_may_transition(self, order_service, shared_order, co_producer, actor_of):
        order = order_service.transition(shared_order.id, "CONFIRMED", actor_of(co_producer))
        assert order.delivery_status == DeliveryStatus.CONFIRMED

    def test_uninvolved_producer_is_denied(
        self, order_service, shared_order, outsider_producer, actor_of
    ):
        with pytest.raises(OrderAccessDenied):
            order_service.transition(shared_order.id, "CONFIRMED", actor_of(outsider_producer))

    def test_unknown_order(self, order_service, admin, actor_of):
        with pytest.raises(OrderNotFound):
            order_service.transition(uuid4(), "CONFIRMED", actor_of(admin))

    def test_unknown_status(self, order_service, shared_order, producer, actor_of):
        with pytest.raises(InvalidOrderInput):
            order_service.transition(shared_order.id, "LOST", actor_of(producer))

    def test_delivered_requires_proof(self, order_service, shared_order, producer, actor_of):
        order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))
        with pytest.raises(DeliveryProofRequired):
            order_service.transition(shared_order.id, "DELIVERED", actor_of(producer))

    def test_delivered_stores_proof(self, delivered_order):
        assert delivered_order.delivery_status == DeliveryStatus.DELIVERED
        assert delivered_order.delivery_proof == "proof://pod-1"

    def test_stale_expected_status_is_a_conflict(
        self, order_service, shared_order, producer, actor_of
    ):
        order_service.transition(shared_order.id, "CONFIRMED", actor_of(producer))
        with pytest.raises(OrderConflict):
            order_service.transition(
                shared_order.id,
                "SHIPPED",
                actor_of(producer),
                expected_status=DeliveryStatus.PENDING,
            )

    def test_lost_compare_and_set_is_a_conflict(self, shared_order, producer, actor_of):
        """Two writers read PENDING; the second conditional write affects no row."""
        repo = OrderDjangoRepository()
        repo.compare_and_set_delivery = MagicMock(return_value=False)
        service = OrderService(repo, ProductDjangoRepository(), anchor_scheduler=MagicMock())

        with pytest.raises(OrderConflict):
            service.transition(shared_order.id, "CONFIRMED", actor_of(producer))
        assert not OrderStatusHistory.objects.filter(
            order=shared_order, to_status=DeliveryStatus.CONFIRMED
        ).exists()

    def test_each_transition_appends_history(
        self, order_service, shared_order, producer, actor_of
    ):
        order_service.transition(
            shared_order.id, "CONFIRMED", actor_of(producer), reason="Packed"
        )
        order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))

        history = order_service.get_history(shared_order.id, actor_of(producer))
        assert [(h.from_status, h.to_status) for h in history] == [
            (None, "PENDING"),
            ("PENDING", "CONFIRMED"),
            ("CONFIRMED", "SHIPPED"),
        ]
        assert history[1].reason == "Packed"
        assert history[1].actor_role == "PRODUCER"


class TestCancellation:
    def test_buyer_cancels_and_stock_is_released(
        self, order_service, place_order, buyer, product, actor_of
    ):
        order = place_order(buyer, [(product, 4)])

        cancelled = order_service.cancel_order(order.id, actor_of(buyer), reason="Changed mind")

        assert cancelled.delivery_status == DeliveryStatus.CANCELLED
        product.refresh_from_db()
        assert product.stock_quantity == 10
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderCancelled"
        ).exists()

    def test_buyer_cannot_cancel_confirmed_order(
        self, order_service, shared_order, buyer, producer, actor_of
    ):
        order_service.transition(shared_order.id, "CONFIRMED", actor_of(producer))
        with pytest.raises(IllegalOrderTransition):
            order_service.cancel_order(shared_order.id, actor_of(buyer))

    def test_other_buyer_cannot_cancel(self, order_service, shared_order, other_buyer, actor_of):
        with pytest.raises(OrderAccessDenied):
            order_service.cancel_order(shared_order.id, actor_of(other_buyer))

    def test_cancel_endpoint_is_for_buyers(self, order_service, shared_order, producer, actor_of):
        with pytest.raises(RoleNotPermitted):
            order_service.cancel_order(shared_order.id, actor_of(producer))

    def test_admin_recovery_reserves_stock_again(
        self, order_service, place_order, buyer, admin, product, actor_of
    ):
        order = place_order(buyer, [(product, 4)])
        order_service.cancel_order(order.id, actor_of(buyer))

        recovered = order_service.transition(order.id, "PENDING", actor_of(admin))

        assert recovered.delivery_status == DeliveryStatus.PENDING
        product.refresh_from_db()
        assert product.stock_quantity == 6

    def test_admin_recovery_fails_without_stock(
        self, order_service, place_order, buyer, other_buyer, admin, product, actor_of
    ):
        order = place_order(buyer, [(product, 6)])
        order_service.cancel_order(order.id, actor_of(buyer))
        place_order(other_buyer, [(product, 8)])

        with pytest.raises(InsufficientStock):
            order_service.transition(order.id, "PENDING", actor_of(admin))


# ---------------------------------------------------------------------------
# Payment axis
# ---------------------------------------------------------------------------


class TestPaymentStatus:
    def test_gateway_confirmation_recorded_by_system(self, order_service, shared_order):
        order = order_service.apply_payment_status(
            shared_order.id, PaymentStatus.CONFIRMED, reason="Gateway success"
        )

        assert order.payment_status == PaymentStatus.CONFIRMED
        assert order.delivery_status == DeliveryStatus.PENDING
        entry = OrderStatusHistory.objects.get(order=order, axis=HistoryAxis.PAYMENT)
        assert entry.actor_id is None
        assert entry.actor_role == "SYSTEM"

    def test_payment_leaves_pending_only_once(self, order_service, shared_order):
        order_service.apply_payment_status(shared_order.id, PaymentStatus.FAILED, reason="x")
        with pytest.raises(PaymentAlreadyFinal):
            order_service.apply_payment_status(
                shared_order.id, PaymentStatus.CONFIRMED, reason="late success"
            )

    def test_settlement_schedules_anchoring_after_commit(
        self, order_service, delivered_order, anchor_scheduler, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            order_service.apply_payment_status(
                delivered_order.id, PaymentStatus.CONFIRMED, reason="Gateway success"
            )

        anchor_scheduler.assert_called_once_with(delivered_order.id)
        assert OutboxEvent.objects.filter(
            aggregate_id=str(delivered_order.id), event_type="OrderSettled"
        ).exists()

    def test_delivery_after_payment_also_settles(
        self,
        order_service,
        shared_order,
        producer,
        actor_of,
        anchor_scheduler,
        django_capture_on_commit_callbacks,
    ):
        order_service.apply_payment_status(shared_order.id, PaymentStatus.CONFIRMED, reason="ok")
        order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))

        with django_capture_on_commit_callbacks(execute=True):
            order_service.transition(
                shared_order.id, "DELIVERED", actor_of(producer), delivery_proof="pod"
            )

        anchor_scheduler.assert_called_once_with(shared_order.id)

    def test_unsettled_order_is_not_anchored(
        self, order_service, shared_order, anchor_scheduler, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            order_service.apply_payment_status(
                shared_order.id, PaymentStatus.CONFIRMED, reason="ok"
            )
        anchor_scheduler.assert_not_called()


class TestRefund:
    def test_partial_refund(self, order_service, settled_order, admin, actor_of):
        order = order_service.apply_refund(settled_order.id, Decimal("150.00"), actor_of(admin))

        assert order.payment_status == PaymentStatus.PARTIALLY_REFUNDED
        assert order.refunded_amount == Decimal("150.00")
        assert order.delivery_status == DeliveryStatus.DELIVERED

    def test_refunds_accumulate_to_full(self, order_service, settled_order, admin, actor_of):
        order_service.apply_refund(settled_order.id, Decimal("100.00"), actor_of(admin))
        order = order_service.apply_refund(settled_order.id, Decimal("200.00"), actor_of(admin))

        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.refundable_amount == Decimal("0.00")

    def test_refund_beyond_total(self, order_service, settled_order, admin, actor_of):
        with pytest.raises(InvalidRefund):
            order_service.apply_refund(settled_order.id, Decimal("300.01"), actor_of(admin))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_refund_must_be_positive(self, order_service, settled_order, admin, actor_of, amount):
        with pytest.raises(InvalidRefund):
            order_service.apply_refund(settled_order.id, amount, actor_of(admin))

    def test_unpaid_order_is_not_refundable(self, order_service, shared_order, admin, actor_of):
        with pytest.raises(PaymentNotRefundable):
            order_service.apply_refund(shared_order.id, Decimal("10.00"), actor_of(admin))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestVisibility:
    def test_buyer_sees_own_orders_only(
        self, order_service, place_order, buyer, other_buyer, product, actor_of
    ):
        mine = place_order(buyer, [(product, 1)])
        place_order(other_buyer, [(product, 1)])

        visible = list(order_service.list_orders(actor_of(buyer)))
        assert [o.id for o in visible] == [mine.id]

    def test_co_producer_sees_shared_order(
        self, order_service, shared_order, co_producer, outsider_producer, actor_of
    ):
        assert shared_order.id in {o.id for o in order_service.list_orders(actor_of(co_producer))}
        assert not order_service.list_orders(actor_of(outsider_producer)).exists()

    def test_other_buyer_cannot_read_order(self, order_service, shared_order, other_buyer, actor_of):
        with pytest.raises(OrderAccessDenied):
            order_service.get_order(shared_order.id, actor_of(other_buyer))

    def test_buyer_cannot_read_payouts(self, order_service, settled_order, buyer, actor_of):
        with pytest.raises(RoleNotPermitted):
            order_service.get_payouts(settled_order.id, actor_of(buyer))
