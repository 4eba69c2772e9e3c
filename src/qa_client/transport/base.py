"""
Transport Interface

The reliable pub/sub transport is an external collaborator. This module
defines the surface the channel layer consumes from it:

    - Node: the process-wide connection, emitting ``health`` events, and
      the factory for encoders, decoders and channels
    - Channel: one conversation (room) on a node; ``send`` accepts opaque
      bytes and returns a locally-unique handle, and the channel emits
      lifecycle events for that handle plus ``message-received``

Event details:
    sending-message, message-sent, message-acknowledged: the handle
    message-possibly-acknowledged: {"handle": ..., "count": int}
    sending-message-irrecoverable-error: {"handle": ..., "error": ...}
    irretrievable-message: transport-defined detail
    message-received: {"payload": bytes}
    health (on Node.events): a HealthStatus
"""

import abc
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

SENDING_MESSAGE = "sending-message"
MESSAGE_SENT = "message-sent"
MESSAGE_POSSIBLY_ACKNOWLEDGED = "message-possibly-acknowledged"
MESSAGE_ACKNOWLEDGED = "message-acknowledged"
SENDING_MESSAGE_IRRECOVERABLE_ERROR = "sending-message-irrecoverable-error"
IRRETRIEVABLE_MESSAGE = "irretrievable-message"
MESSAGE_RECEIVED = "message-received"
HEALTH = "health"

LIFECYCLE_EVENTS = (
    SENDING_MESSAGE,
    MESSAGE_SENT,
    MESSAGE_POSSIBLY_ACKNOWLEDGED,
    MESSAGE_ACKNOWLEDGED,
    SENDING_MESSAGE_IRRECOVERABLE_ERROR,
    IRRETRIEVABLE_MESSAGE,
)


class HealthStatus(str, Enum):
    """Health levels reported by a transport node."""

    UNHEALTHY = "Unhealthy"
    MINIMALLY_HEALTHY = "MinimallyHealthy"
    SUFFICIENTLY_HEALTHY = "SufficientlyHealthy"


EventHandler = Callable[[Any], None]


class EventEmitter:
    """Named-event dispatcher with per-event handler lists."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def add_listener(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, detail: Any = None) -> None:
        """
        Dispatch an event to its handlers in registration order.

        A failing handler is logged and does not prevent the remaining
        handlers from running.
        """
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(detail)
            except Exception:
                logger.exception(f"Handler for {event} failed")


@dataclass(frozen=True)
class Encoder:
    """Binds outgoing messages to a routing topic."""

    topic: str


@dataclass(frozen=True)
class Decoder:
    """Selects incoming messages of a routing topic."""

    topic: str


class Channel(EventEmitter, abc.ABC):
    """
    One conversation on a transport node.

    Attributes:
        room_id: Conversation identifier on the transport
        sender_id: Local participant ID
        encoder: Outgoing topic binding
        decoder: Incoming topic binding
    """

    def __init__(
        self, room_id: str, sender_id: str, encoder: Encoder, decoder: Decoder
    ):
        super().__init__()
        self.room_id = room_id
        self.sender_id = sender_id
        self.encoder = encoder
        self.decoder = decoder

    @abc.abstractmethod
    async def send(self, payload: bytes) -> str:
        """Queue bytes for delivery and return the send-handle."""


class Node(abc.ABC):
    """
    Process-wide transport connection.

    Attributes:
        events: Emitter for node-level events (``health``)
        health: Last reported HealthStatus
    """

    def __init__(self):
        self.events = EventEmitter()
        self.health = HealthStatus.UNHEALTHY

    def create_encoder(self, topic: str) -> Encoder:
        return Encoder(topic)

    def create_decoder(self, topic: str) -> Decoder:
        return Decoder(topic)

    @abc.abstractmethod
    async def create_channel(
        self, room_id: str, sender_id: str, encoder: Encoder, decoder: Decoder
    ) -> Channel:
        """Create a channel for one room on this node."""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Release the node's connection."""

    def report_health(self, status: HealthStatus) -> None:
        self.health = status
        self.events.emit(HEALTH, status)
