"""Event handlers for Disputes domain events."""

from __future__ import annotations

import structlog

from modules.disputes.events import DisputeOpened, DisputeStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class DisputeOpenedHandler(IEventHandler[DisputeOpened]):
    def handle(self, event: DisputeOpened) -> None:
        logger.info(
            "dispute.event.opened",
            dispute_id=str(event.aggregate_id),
            order_id=event.order_id,
            raised_by_role=event.raised_by_role,
        )


class DisputeStatusChangedHandler(IEventHandler[DisputeStatusChanged]):
    def handle(self, event: DisputeStatusChanged) -> None:
        logger.info(
            "dispute.event.status_changed",
            dispute_id=str(event.aggregate_id),
            from_status=event.from_status,
            to_status=event.to_status,
        )


dispute_opened_handler = DisputeOpenedHandler()
dispute_status_changed_handler = DisputeStatusChangedHandler()
