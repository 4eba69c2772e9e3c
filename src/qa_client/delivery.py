"""
Delivery Tracker

Correlates transport send-handles with caller-supplied lifecycle callbacks
for one room.

Architecture:
    - Channel event handlers are attached once, when the room's channel is
      created; callbacks are registered per handle at send time
    - Per-handle state machine:
        SENDING -> SENT -> POSSIBLY_ACKNOWLEDGED* -> ACKNOWLEDGED
        SENDING -> IRRECOVERABLE_ERROR
    - A handle's entry is deleted on either terminal state; possibly-ack
      is informational and may fire any number of times
    - Every lifecycle event is forwarded to the observability bus, whether
      or not a callback was registered for its handle

A handle that never reaches a terminal state keeps its entry until the
room is left.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import SendError
from .events import Direction, EventBus
from .transport.base import (
    IRRETRIEVABLE_MESSAGE,
    MESSAGE_ACKNOWLEDGED,
    MESSAGE_POSSIBLY_ACKNOWLEDGED,
    MESSAGE_SENT,
    SENDING_MESSAGE,
    SENDING_MESSAGE_IRRECOVERABLE_ERROR,
    Channel,
)

logger = logging.getLogger(__name__)


class DeliveryState(Enum):
    """Lifecycle state of one outstanding send."""

    SENDING = "sending"
    SENT = "sent"
    POSSIBLY_ACKNOWLEDGED = "possibly_acknowledged"
    ACKNOWLEDGED = "acknowledged"
    IRRECOVERABLE_ERROR = "irrecoverable_error"


TERMINAL_STATES = (DeliveryState.ACKNOWLEDGED, DeliveryState.IRRECOVERABLE_ERROR)


@dataclass
class MessageCallbacks:
    """
    Optional callbacks tracking one message through its lifecycle.

    Attributes:
        on_sending: Called when the transport starts sending
        on_sent: Called when the message reached the network
        on_acknowledged: Called on full acknowledgement
        on_error: Called with a SendError on irrecoverable failure
    """

    on_sending: Optional[Callable[[], None]] = None
    on_sent: Optional[Callable[[], None]] = None
    on_acknowledged: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[SendError], None]] = None


@dataclass
class PendingSend:
    """A registered handle and its callbacks."""

    handle: str
    callbacks: MessageCallbacks
    state: DeliveryState = DeliveryState.SENDING


def _handle_of(detail: Any) -> Optional[str]:
    if isinstance(detail, dict):
        return detail.get("handle")
    return detail


class DeliveryTracker:
    """
    Registry of outstanding sends for one room.

    Attributes:
        room_id: Room whose sends are tracked
    """

    def __init__(self, room_id: str, event_bus: Optional[EventBus] = None):
        self.room_id = room_id
        self._event_bus = event_bus
        self._pending: Dict[str, PendingSend] = {}
        self._handlers = {
            SENDING_MESSAGE: self._on_sending,
            MESSAGE_SENT: self._on_sent,
            MESSAGE_POSSIBLY_ACKNOWLEDGED: self._on_possibly_acknowledged,
            MESSAGE_ACKNOWLEDGED: self._on_acknowledged,
            SENDING_MESSAGE_IRRECOVERABLE_ERROR: self._on_irrecoverable_error,
            IRRETRIEVABLE_MESSAGE: self._on_irretrievable,
        }

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, handle: str) -> bool:
        return handle in self._pending

    def state_of(self, handle: str) -> Optional[DeliveryState]:
        pending = self._pending.get(handle)
        return pending.state if pending else None

    def attach(self, channel: Channel) -> None:
        """Subscribe to the channel's lifecycle events. Call once per channel."""
        for event, handler in self._handlers.items():
            channel.add_listener(event, handler)

    def detach(self, channel: Channel) -> None:
        for event, handler in self._handlers.items():
            channel.remove_listener(event, handler)

    def register(
        self, handle: str, callbacks: Optional[MessageCallbacks] = None
    ) -> None:
        """
        Track a handle returned by the transport.

        Registering a handle that already has an entry replaces it.
        """
        if handle in self._pending:
            logger.warning(
                f"Handle {handle} re-registered in room {self.room_id}"
            )
        self._pending[handle] = PendingSend(
            handle=handle, callbacks=callbacks or MessageCallbacks()
        )

    def clear(self) -> None:
        """Drop every registration; later events reach only the bus."""
        self._pending.clear()

    def _on_sending(self, detail: Any) -> None:
        handle = _handle_of(detail)
        self._publish(Direction.OUT, SENDING_MESSAGE, {"handle": handle})
        pending = self._pending.get(handle)
        if pending:
            pending.state = DeliveryState.SENDING
            self._invoke(pending.callbacks.on_sending, handle)

    def _on_sent(self, detail: Any) -> None:
        handle = _handle_of(detail)
        self._publish(Direction.OUT, MESSAGE_SENT, {"handle": handle})
        pending = self._pending.get(handle)
        if pending:
            pending.state = DeliveryState.SENT
            self._invoke(pending.callbacks.on_sent, handle)

    def _on_possibly_acknowledged(self, detail: Any) -> None:
        handle = _handle_of(detail)
        count = detail.get("count") if isinstance(detail, dict) else None
        self._publish(
            Direction.OUT,
            MESSAGE_POSSIBLY_ACKNOWLEDGED,
            {"handle": handle, "count": count},
        )
        pending = self._pending.get(handle)
        if pending:
            pending.state = DeliveryState.POSSIBLY_ACKNOWLEDGED

    def _on_acknowledged(self, detail: Any) -> None:
        handle = _handle_of(detail)
        self._publish(Direction.OUT, MESSAGE_ACKNOWLEDGED, {"handle": handle})
        pending = self._pending.pop(handle, None)
        if pending:
            pending.state = DeliveryState.ACKNOWLEDGED
            self._invoke(pending.callbacks.on_acknowledged, handle)

    def _on_irrecoverable_error(self, detail: Any) -> None:
        handle = _handle_of(detail)
        error = detail.get("error") if isinstance(detail, dict) else None
        self._publish(
            Direction.ERROR,
            SENDING_MESSAGE_IRRECOVERABLE_ERROR,
            {"handle": handle, "error": str(error)},
        )
        pending = self._pending.pop(handle, None)
        if pending:
            pending.state = DeliveryState.IRRECOVERABLE_ERROR
            self._invoke(pending.callbacks.on_error, handle, SendError(handle, error))

    def _on_irretrievable(self, detail: Any) -> None:
        logger.warning(f"Irretrievable message in room {self.room_id}: {detail!r}")
        self._publish(Direction.ERROR, IRRETRIEVABLE_MESSAGE, {"detail": detail})

    def _publish(self, direction: Direction, event: str, details: Dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(direction, event, details, self.room_id)

    @staticmethod
    def _invoke(callback: Optional[Callable], handle: str, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Delivery callback for {handle} failed")
