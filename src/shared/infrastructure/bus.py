"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent


class InMemoryEventBus(IEventBus):
    """Simple in-process event bus.

    Subscribing also registers the event class by name so the outbox relay
    can turn a stored payload back into the event instance.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}
        self._event_classes: Dict[str, Type[DomainEvent]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        self._event_classes[event_class.__name__] = event_class
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(type(event), []):
            handler.handle(event)

    def rebuild(self, event_name: str, payload: Dict[str, Any]) -> Optional[DomainEvent]:
        """Return the event for an outbox payload, or ``None`` if nobody listens."""
        event_class = self._event_classes.get(event_name)
        if event_class is None:
            return None
        return event_class.from_payload(payload)


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
