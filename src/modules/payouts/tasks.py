"""Asynchronous tasks of the payouts module."""

import structlog
from celery import shared_task

from modules.payouts.repositories.django_repository import PayoutDjangoRepository
from modules.payouts.services import PayoutService

logger = structlog.get_logger(__name__)


@shared_task(name="payouts.schedule_pending")
def schedule_pending_payouts(limit=None):
    """Assign the next payout date to settled, undisputed payouts."""
    scheduled = PayoutService(PayoutDjangoRepository()).schedule_pending(limit=limit)
    return {"scheduled": scheduled}
