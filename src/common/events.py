"""
In-process change notifications.

Writers publish an ``Event`` after their transaction commits; subscribers
(metrics, caches, UI push layers) register handlers per event type. Handlers
run synchronously in the publisher's thread.
"""

import logging
import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of change events."""

    DOCUMENT_DISCOVERED = "document.discovered"
    DOCUMENT_UPLOADED = "document.uploaded"
    DOCUMENT_PROCESSED = "document.processed"
    DOCUMENT_UPDATED = "document.updated"
    DOCUMENT_IMPORTED = "document.imported"
    DOCUMENT_SKIPPED = "document.skipped"
    INVOICE_CHANGED = "invoice.changed"
    HR_COST_CHANGED = "hr_cost.changed"
    SOFTWARE_COST_CHANGED = "software_cost.changed"
    CONTRACT_CHANGED = "contract.changed"


@dataclass
class Event:
    """A change that subscribers may react to."""

    event_type: EventType
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "event_type": self.event_type.value}


Handler = Callable[[Event], None]


class EventBus:
    """Registry of handlers keyed by event type."""

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        with self._lock:
            if handler not in self._handlers[event_type]:
                self._handlers[event_type].append(handler)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def publish(self, event: Event) -> None:
        """
        Deliver an event to every handler registered for its type.

        The write that produced the event has already committed, so a failing
        handler is logged and does not affect the caller or other handlers.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, ()))

        logger.debug(f"Publishing {event.event_type.value} from {event.source}")
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)!r} "
                    f"failed for {event.event_type.value}"
                )


bus = EventBus()


def publish(event_type: EventType, source: str, **payload: Any) -> Event:
    """Build and publish an event on the process-wide bus."""
    event = Event(event_type=event_type, source=source, payload=payload)
    bus.publish(event)
    return event
