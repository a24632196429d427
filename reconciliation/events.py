"""Domain events emitted by reconciliation and yard linking.

The engine and linker publish events to an `EventBus`; audit and
notifications subscribe to it. A failing subscriber is logged and never
affects the publisher or the other subscribers.
"""

import asyncio
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from core.observability.logging import get_logger

logger = get_logger(__name__)


class ReconciliationEventType(str, Enum):
    DELTA_APPLIED = "delta_applied"
    ENTRY_PENDING = "entry_pending"
    JOURNEY_COMPLETE = "journey_complete"
    UNKNOWN_STATION = "unknown_station"
    RECORD_NOT_FOUND = "record_not_found"

    # Yard fuel
    YARD_RECORDED = "yard_recorded"
    YARD_LINKED = "yard_linked"
    YARD_PENDING = "yard_pending"
    YARD_REJECTED = "yard_rejected"

    # Journeys
    JOURNEY_COMPLETED = "journey_completed"
    JOURNEY_ACTIVATED = "journey_activated"


class ReconciliationEvent(BaseModel):
    """Something that happened to a fuel record or a source entry."""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: ReconciliationEventType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    truck_no: Optional[str] = None
    do_number: Optional[str] = None
    station: Optional[str] = None
    fuel_record_id: Optional[int] = None
    field: Optional[str] = None
    liters: float = 0
    source_type: Optional[str] = None  # "lpo_entry", "yard_fuel", ...
    source_id: Optional[Any] = None
    actor: str = "system"
    details: Dict[str, Any] = Field(default_factory=dict)


Subscriber = Callable[[ReconciliationEvent], Union[None, Awaitable[None]]]


class EventBus:
    """In-process publish/subscribe channel.

    Subscribers may be plain functions or coroutine functions. `publish`
    awaits them in subscription order.

    Example:
        bus = EventBus()
        bus.subscribe(notification_service.handle_event)
        await bus.publish(ReconciliationEvent(event_type=..., truck_no="T100 ABC"))
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def publish(self, event: ReconciliationEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning(
                    f"Event subscriber {getattr(subscriber, '__qualname__', subscriber)} failed: {e}",
                    extra_fields={"event_type": event.event_type.value},
                )


class RecordingSubscriber:
    """Subscriber that keeps every event it sees (used in tests and scripts)."""

    def __init__(self):
        self.events: List[ReconciliationEvent] = []

    def __call__(self, event: ReconciliationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: ReconciliationEventType) -> List[ReconciliationEvent]:
        return [e for e in self.events if e.event_type == event_type]
