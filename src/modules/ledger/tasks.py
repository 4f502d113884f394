"""Asynchronous tasks of the ledger module."""

import structlog
from celery import shared_task
from django.conf import settings

from modules.ledger.exceptions import LedgerUnavailable
from modules.ledger.repositories.django_repository import LedgerDjangoRepository
from modules.ledger.services import LedgerReconciler
from modules.orders.repositories.django_repository import OrderDjangoRepository

logger = structlog.get_logger(__name__)

SWEEP_BATCH_SIZE = 500


def build_reconciler(client=None):
    return LedgerReconciler(
        ledger_repository=LedgerDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        client=client,
    )


@shared_task(
    name="ledger.anchor_order",
    autoretry_for=(LedgerUnavailable,),
    retry_backoff=True,
    retry_backoff_max=settings.LEDGER_ANCHOR_BACKOFF_MAX,
    retry_jitter=True,
    max_retries=settings.LEDGER_ANCHOR_MAX_RETRIES,
)
def anchor_order(order_id, attempt=None):
    """Anchor one order; an unreachable ledger is retried with backoff."""
    outcome = build_reconciler().anchor(order_id, attempt)
    if outcome.retryable:
        raise LedgerUnavailable(f"Anchoring of order {order_id} deferred: {outcome.reason}")
    return outcome.as_dict()


def schedule_anchor(order_id):
    """Queue anchoring of a settled order (fire-and-forget)."""
    return build_reconciler().schedule(order_id, dispatch=anchor_order.delay)


@shared_task(name="ledger.sweep_unanchored")
def sweep_unanchored(limit=None):
    """Re-queue settled orders that still have no ledger record."""
    order_ids = LedgerDjangoRepository().awaiting_anchor(limit or SWEEP_BATCH_SIZE)
    for order_id in order_ids:
        schedule_anchor(order_id)
    if order_ids:
        logger.info("ledger.sweep_completed", scheduled=len(order_ids))
    return {"scheduled": len(order_ids)}
