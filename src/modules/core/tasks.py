"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task
from django.conf import settings

from modules.core.models import OutboxEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox")
def relay_outbox(batch_size=None):
    """Publish pending outbox events to the in-process event bus.

    ``FAILED`` rows are retried until ``OUTBOX_MAX_RETRIES`` is reached.
    Handler errors are recorded on the row and never abort the batch.
    """
    batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
    pending = OutboxEvent.objects.relayable(settings.OUTBOX_MAX_RETRIES)[:batch_size]

    published = failed = 0
    for outbox_event in pending:
        log = logger.bind(
            outbox_event_id=str(outbox_event.id),
            event_type=outbox_event.event_type,
            aggregate_id=outbox_event.aggregate_id,
        )
        try:
            event = event_bus.rebuild(outbox_event.event_type, outbox_event.payload)
            if event is not None:
                event_bus.publish(event)
        except Exception as exc:
            log.exception("outbox.relay_failed")
            outbox_event.mark_as_failed(str(exc))
            failed += 1
            continue
        outbox_event.mark_as_published()
        published += 1

    if published or failed:
        logger.info("outbox.relay_completed", published=published, failed=failed)
    return {"published": published, "failed": failed}
