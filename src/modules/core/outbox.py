"""Helpers that move collected domain events into the transactional outbox."""

from __future__ import annotations

from typing import Any

import structlog

from modules.core.models import OutboxEvent

logger = structlog.get_logger(__name__)


def record_domain_events(entity: Any, topic: str) -> int:
    """Persist the entity's pending domain events as ``OutboxEvent`` rows.

    Must run inside the transaction that changed the entity so the events
    and the state change commit (or roll back) together.
    """
    events = entity.domain_events if hasattr(entity, "domain_events") else []
    for event in events:
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=event.to_payload(),
            topic=topic,
        )
    if hasattr(entity, "clear_domain_events"):
        entity.clear_domain_events()
    if events:
        logger.info("outbox.events_recorded", topic=topic, event_count=len(events))
    return len(events)
