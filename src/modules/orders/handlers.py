"""Event handlers for Orders domain events.

Handlers run when ``core.relay_outbox`` publishes outbox rows to the
in-process bus.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import structlog

from modules.orders.events import OrderCancelled, OrderCreated, OrderSettled, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info("order.event.created", order_id=str(event.aggregate_id))


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info("order.event.cancelled", order_id=str(event.aggregate_id))


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            from_status=event.from_status,
            to_status=event.to_status,
            actor_role=event.actor_role,
        )


class OrderSettledHandler(IEventHandler[OrderSettled]):
    """Durable path to anchoring.

    The service already schedules anchoring after commit; this handler
    covers a crash between the commit and that hook.  Anchoring is
    idempotent, so running both is harmless.
    """

    def __init__(self, scheduler: Optional[Callable[[Any], Any]] = None) -> None:
        self._scheduler = scheduler

    def handle(self, event: OrderSettled) -> None:
        scheduler = self._scheduler
        if scheduler is None:
            from modules.ledger.tasks import schedule_anchor

            scheduler = schedule_anchor
        logger.info("order.event.settled", order_id=str(event.aggregate_id))
        scheduler(event.aggregate_id)


order_created_handler = OrderCreatedHandler()
order_cancelled_handler = OrderCancelledHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_settled_handler = OrderSettledHandler()
