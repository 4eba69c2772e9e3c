"""
Observability Event Bus

A side channel mirroring every transport lifecycle event and every
receive-path decision (delivered, duplicate, undecodable) for real-time
inspection, e.g. by a developer console. It is decoupled from the main
message flow: nothing on the send or receive path depends on who is
subscribed here.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from .schemas import now_ms

logger = logging.getLogger(__name__)

# Number of recent events kept for late subscribers
DEFAULT_HISTORY_SIZE = 100

# Receive-path event names (lifecycle names live in transport.base)
MESSAGE_RECEIVED = "message-received"
DUPLICATE_MESSAGE = "duplicate-message"
DECODE_ERROR = "decode-error"
LISTENER_ERROR = "listener-error"
CHANNEL_JOINED = "channel-joined"
CHANNEL_LEFT = "channel-left"


class Direction(str, Enum):
    """Which way the observed event flows."""

    OUT = "out"
    IN = "in"
    ERROR = "error"


@dataclass
class SDSEvent:
    """
    One observability record.

    Attributes:
        direction: OUT for sends, IN for receives, ERROR for failures
        event: Event name
        timestamp: Epoch milliseconds when the record was created
        details: Normalized event detail
        room_id: Room the event belongs to, if any
    """

    direction: Direction
    event: str
    timestamp: int = field(default_factory=now_ms)
    details: Dict[str, Any] = field(default_factory=dict)
    room_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.direction.value,
            "event": self.event,
            "timestamp": self.timestamp,
            "details": self.details,
            "instanceId": self.room_id,
        }


SDSListener = Callable[[SDSEvent], None]


class EventBus:
    """
    Fan-out of SDSEvent records to subscribers.

    Attributes:
        history_size: Number of recent events kept by recent()
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self.history_size = history_size
        self._listeners: Set[SDSListener] = set()
        self._history: Deque[SDSEvent] = deque(maxlen=history_size)

    def subscribe(self, listener: SDSListener) -> Callable[[], None]:
        """
        Register a listener for every future event.

        Returns:
            A callable that removes the listener
        """
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def emit(self, event: SDSEvent) -> None:
        """Record an event and hand it to every listener."""
        self._history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"SDS event listener failed on {event.event}")

    def publish(
        self,
        direction: Direction,
        event: str,
        details: Optional[Dict[str, Any]] = None,
        room_id: Optional[str] = None,
    ) -> SDSEvent:
        """Build an SDSEvent from its parts and emit it."""
        record = SDSEvent(
            direction=direction,
            event=event,
            details=details or {},
            room_id=room_id,
        )
        self.emit(record)
        return record

    def recent(self) -> List[SDSEvent]:
        """Return the most recent events, oldest first."""
        return list(self._history)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        """Drop all listeners and the event history."""
        self._listeners.clear()
        self._history.clear()
