"""Concurrency integration tests.

Covers:
- Two transitions from the same status: exactly one wins, the other
  raises ``OrderConflict``.
- Two openings of a dispute on one order: exactly one dispute exists.
- The same gateway callback delivered twice at once: applied once.
- Stock reservation under load: never oversold, never negative.

The threaded scenarios need real row-level locking, so they run against
the database named by ``TEST_DATABASE_URL`` (MySQL or PostgreSQL) and are
skipped on SQLite.  ``TestInterleavedWrites`` replays the same races in a
single thread, with the losing call acting on a read taken before the
winning write, so the conflict paths are exercised on every backend.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.db import connection, connections

from modules.catalog.exceptions import InsufficientStock
from modules.catalog.models import Product, ProductStatus
from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.disputes.exceptions import ActiveDisputeExists
from modules.disputes.dtos import OpenDisputeDTO
from modules.disputes.models import Dispute
from modules.disputes.repositories.django_repository import DisputeDjangoRepository
from modules.disputes.services import DisputeService
from modules.orders.constants import DeliveryStatus, HistoryAxis, PaymentStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import OrderConflict
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.actors import Actor
from modules.payments.dtos import GatewayEventDTO
from modules.payments.models import GatewayEvent
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.services import PaymentReconciler, PaymentService

pytestmark = pytest.mark.integration

logger = logging.getLogger(__name__)

INITIAL_STOCK = 5
NUM_WORKERS = 10

requires_row_locks = pytest.mark.skipif(
    not connection.features.has_select_for_update,
    reason="needs a database with row-level locking (set TEST_DATABASE_URL)",
)


def _order_service() -> OrderService:
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        anchor_scheduler=MagicMock(name="anchor_scheduler"),
    )


def _dispute_service() -> DisputeService:
    return DisputeService(
        dispute_repository=DisputeDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        order_service=_order_service(),
    )


def _run_together(*calls):
    """Run each zero-argument call in its own thread, released at once.

    Returns the outcome of every call: its return value, or the exception
    it raised.
    """
    barrier = threading.Barrier(len(calls))

    def _worker(call):
        try:
            barrier.wait()
            return call()
        except Exception as exc:
            return exc
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(_worker, call) for call in calls]
        return [future.result() for future in as_completed(futures)]


def _delivery_history(order_id):
    return OrderStatusHistory.objects.filter(order_id=order_id, axis=HistoryAxis.DELIVERY)


# ---------------------------------------------------------------------------
# Threaded races
# ---------------------------------------------------------------------------


@requires_row_locks
@pytest.mark.django_db(transaction=True)
class TestConcurrentTransitions:
    def test_exactly_one_transition_wins(self, shared_order, buyer, producer):
        def _ship():
            return _order_service().transition(
                shared_order.id,
                "SHIPPED",
                Actor.from_participant(producer),
                expected_status=DeliveryStatus.PENDING,
            )

        def _cancel():
            return _order_service().transition(
                shared_order.id,
                "CANCELLED",
                Actor.from_participant(buyer),
                expected_status=DeliveryStatus.PENDING,
            )

        results = _run_together(_ship, _cancel)

        winners = [r for r in results if isinstance(r, Order)]
        conflicts = [r for r in results if isinstance(r, OrderConflict)]
        assert len(winners) == 1
        assert len(conflicts) == 1

        order = Order.objects.get(id=shared_order.id)
        assert order.delivery_status == winners[0].delivery_status
        # Initial PENDING entry plus the single winning transition.
        assert _delivery_history(order.id).count() == 2


@requires_row_locks
@pytest.mark.django_db(transaction=True)
class TestConcurrentDisputeOpening:
    def test_only_one_dispute_is_opened(self, settled_order, buyer, producer):
        def _open_as(participant):
            return lambda: _dispute_service().open_dispute(
                OpenDisputeDTO(order_id=settled_order.id, reason="Item damaged"),
                Actor.from_participant(participant),
            )

        results = _run_together(_open_as(buyer), _open_as(producer))

        opened = [r for r in results if isinstance(r, Dispute)]
        refused = [r for r in results if isinstance(r, ActiveDisputeExists)]
        assert len(opened) == 1
        assert len(refused) == 1
        assert Dispute.objects.filter(order_id=settled_order.id).count() == 1


@requires_row_locks
@pytest.mark.django_db(transaction=True)
class TestConcurrentGatewayDelivery:
    def test_duplicate_callbacks_apply_once(self, shared_order, buyer):
        reference = PaymentService(PaymentDjangoRepository(), _order_service()).create_reference(
            shared_order.id, Actor.from_participant(buyer)
        )
        event = GatewayEventDTO(
            reference=reference.reference, status="success", amount=Decimal("300.00")
        )

        def _deliver():
            return PaymentReconciler(
                PaymentDjangoRepository(), _order_service()
            ).apply_gateway_event(event)

        acks = _run_together(_deliver, _deliver)

        assert not [ack for ack in acks if isinstance(ack, Exception)]
        assert sorted(ack.duplicate for ack in acks) == [False, True]
        assert GatewayEvent.objects.filter(reference=reference.reference).count() == 1
        assert Order.objects.get(id=shared_order.id).payment_status == PaymentStatus.CONFIRMED
        assert (
            OrderStatusHistory.objects.filter(
                order_id=shared_order.id, axis=HistoryAxis.PAYMENT
            ).count()
            == 1
        )


@requires_row_locks
@pytest.mark.django_db(transaction=True)
class TestStockConcurrency:
    """Prove atomic stock reservation under concurrent load."""

    @pytest.fixture()
    def gamer_pc(self, producer):
        return Product.objects.create(
            producer=producer,
            sku="GAMER-PC",
            name="Gamer PC",
            price=Decimal("2999.99"),
            stock_quantity=INITIAL_STOCK,
            status=ProductStatus.ACTIVE,
        )

    def _buy_one(self, product, buyer, shipping_address, thread_id):
        dto = CreateOrderDTO(
            items=[CreateOrderItemDTO(product_id=product.id, quantity=1)],
            shipping_address=shipping_address,
            notes=f"Concurrency thread {thread_id}",
        )
        try:
            _order_service().create_order(dto, Actor.from_participant(buyer))
            logger.warning("Thread %d: order created successfully", thread_id)
            return "success"
        except InsufficientStock:
            logger.warning("Thread %d: InsufficientStock (expected)", thread_id)
            return "insufficient"

    def test_concurrent_orders_exhaust_stock(self, gamer_pc, buyer, shipping_address):
        """10 threads buy 1 unit from stock=5: exactly 5 succeed."""
        results = _run_together(
            *(
                lambda i=i: self._buy_one(gamer_pc, buyer, shipping_address, i)
                for i in range(NUM_WORKERS)
            )
        )

        assert results.count("success") == INITIAL_STOCK
        assert results.count("insufficient") == NUM_WORKERS - INITIAL_STOCK

        gamer_pc.refresh_from_db()
        assert gamer_pc.stock_quantity == 0
        assert Order.objects.filter(buyer=buyer).count() == INITIAL_STOCK

    def test_stock_is_conserved(self, gamer_pc, buyer, shipping_address):
        """Initial stock always equals units sold plus units remaining."""
        results = _run_together(
            *(
                lambda i=i: self._buy_one(gamer_pc, buyer, shipping_address, i)
                for i in range(NUM_WORKERS)
            )
        )

        gamer_pc.refresh_from_db()
        assert gamer_pc.stock_quantity >= 0
        assert results.count("success") + gamer_pc.stock_quantity == INITIAL_STOCK


# ---------------------------------------------------------------------------
# Interleaved races (single thread, every backend)
# ---------------------------------------------------------------------------


class TestInterleavedWrites:
    def test_transition_acting_on_a_stale_read_conflicts(
        self, order_service, shared_order, buyer, producer, actor_of, monkeypatch
    ):
        repository = OrderDjangoRepository()
        stale = repository.get_by_id(str(shared_order.id))
        order_service.transition(shared_order.id, "CANCELLED", actor_of(buyer))
        # The producer's request read the order before the buyer's cancel landed.
        monkeypatch.setattr(repository, "get_by_id", lambda id: stale)
        racing = OrderService(
            order_repository=repository,
            product_repository=ProductDjangoRepository(),
            anchor_scheduler=MagicMock(name="anchor_scheduler"),
        )

        with pytest.raises(OrderConflict):
            racing.transition(shared_order.id, "SHIPPED", actor_of(producer))

        order = Order.objects.get(id=shared_order.id)
        assert order.delivery_status == DeliveryStatus.CANCELLED
        assert sorted(_delivery_history(order.id).values_list("to_status", flat=True)) == [
            DeliveryStatus.CANCELLED,
            DeliveryStatus.PENDING,
        ]

    def test_dispute_created_between_check_and_insert_is_refused(
        self, settled_order, buyer, producer, actor_of, monkeypatch
    ):
        service = _dispute_service()
        dto = OpenDisputeDTO(order_id=settled_order.id, reason="Item damaged")
        service.open_dispute(dto, actor_of(buyer))
        # The second caller read "no active dispute" before the first committed.
        monkeypatch.setattr(service._dispute_repo, "get_active_for_order", lambda order_id: None)

        with pytest.raises(ActiveDisputeExists):
            service.open_dispute(dto, actor_of(producer))

        assert Dispute.objects.filter(order_id=settled_order.id).count() == 1

    def test_gateway_event_recorded_between_check_and_insert_is_a_duplicate(
        self, order_service, shared_order, buyer, actor_of, monkeypatch
    ):
        reference = PaymentService(PaymentDjangoRepository(), order_service).create_reference(
            shared_order.id, actor_of(buyer)
        )
        event = GatewayEventDTO(
            reference=reference.reference, status="success", amount=Decimal("300.00")
        )
        reconciler = PaymentReconciler(PaymentDjangoRepository(), order_service)
        first = reconciler.apply_gateway_event(event)
        monkeypatch.setattr(
            reconciler._payment_repo, "get_event", lambda reference, event_status: None
        )

        second = reconciler.apply_gateway_event(event)

        assert first.duplicate is False
        assert second.duplicate is True
        assert GatewayEvent.objects.filter(reference=reference.reference).count() == 1
        assert (
            OrderStatusHistory.objects.filter(
                order_id=shared_order.id, axis=HistoryAxis.PAYMENT
            ).count()
            == 1
        )
