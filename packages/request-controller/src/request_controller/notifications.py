"""Event recording for reconciliation outcomes.

Listeners subscribe by reason; every recorded event is also kept in a
bounded history so callers can inspect what happened to a Request.
"""

from __future__ import annotations

from collections import defaultdict, deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from pydantic import BaseModel, Field

from .models import ResourceIdentity

# Standard event reasons
REQUEST_COMPLETED = "request_completed"
REQUEST_SKIPPED = "request_skipped"
REQUEST_REJECTED = "request_rejected"
REQUEST_FAILED = "request_failed"

DEFAULT_HISTORY = 256


class EventType(Enum):
    NORMAL = "normal"
    WARNING = "warning"


class Event(BaseModel):
    identity: ResourceIdentity
    reason: str
    message: str = ""
    type: EventType = EventType.NORMAL
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


EventCallback = Callable[[Event], None]


class EventRecorder:
    """Synchronous recorder with per-reason listeners."""

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        self._listeners: dict[str, list[EventCallback]] = defaultdict(list)
        self._history: deque[Event] = deque(maxlen=history)

    def on(self, reason: str, callback: EventCallback) -> None:
        """Register a listener for a reason."""
        self._listeners[reason].append(callback)

    def off(self, reason: str, callback: EventCallback) -> None:
        """Remove a listener."""
        try:
            self._listeners[reason].remove(callback)
        except ValueError:
            pass

    def record(
        self,
        identity: ResourceIdentity,
        reason: str,
        message: str = "",
        type: EventType = EventType.NORMAL,
    ) -> Event:
        event = Event(identity=identity, reason=reason, message=message, type=type)
        self._history.append(event)
        for callback in self._listeners.get(reason, []):
            callback(event)
        return event

    def events_for(self, identity: ResourceIdentity) -> list[Event]:
        """Recorded events for one Request, oldest first."""
        return [e for e in self._history if e.identity == identity]
