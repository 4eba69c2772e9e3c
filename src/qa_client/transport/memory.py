"""
In-Process Loopback Transport

A transport binding that routes payloads between channels of nodes that
share one MemoryHub. Used by tests, demos and single-process setups.

Lifecycle events for a send fire on the next event-loop iteration after
``send`` returns, in the order: sending-message, message-sent,
message-possibly-acknowledged (only when other subscribers exist),
message-acknowledged. Delivery is at-least-once in the sense that
``redeliver`` can replay any payload, which tests use to simulate
transport-level duplication.
"""

import asyncio
import logging
import uuid
import weakref
from typing import Dict, List, Optional, Tuple

from .base import (
    MESSAGE_ACKNOWLEDGED,
    MESSAGE_POSSIBLY_ACKNOWLEDGED,
    MESSAGE_RECEIVED,
    MESSAGE_SENT,
    SENDING_MESSAGE,
    SENDING_MESSAGE_IRRECOVERABLE_ERROR,
    Channel,
    Decoder,
    Encoder,
    HealthStatus,
    Node,
)

logger = logging.getLogger(__name__)


class MemoryHub:
    """
    Shared routing table for in-process channels.

    Channels are held weakly: a channel the session has released stops
    receiving once it is garbage collected.

    Attributes:
        loopback: Whether a sender's own channel also receives its payloads
    """

    def __init__(self, loopback: bool = False):
        self.loopback = loopback
        self._subscribers: Dict[Tuple[str, str], "weakref.WeakSet[MemoryChannel]"] = {}

    def subscribe(self, channel: "MemoryChannel") -> None:
        key = (channel.decoder.topic, channel.room_id)
        self._subscribers.setdefault(key, weakref.WeakSet()).add(channel)

    def unsubscribe(self, channel: "MemoryChannel") -> None:
        key = (channel.decoder.topic, channel.room_id)
        subscribers = self._subscribers.get(key)
        if subscribers is not None:
            subscribers.discard(channel)

    def subscribers(self, topic: str, room_id: str) -> List["MemoryChannel"]:
        return list(self._subscribers.get((topic, room_id), ()))

    def publish(self, sender: "MemoryChannel", payload: bytes) -> int:
        """
        Deliver a payload to every subscriber of the sender's room.

        Returns:
            Number of channels other than the sender that received it
        """
        delivered = 0
        for channel in self.subscribers(sender.encoder.topic, sender.room_id):
            if channel is sender:
                if self.loopback:
                    channel.emit(MESSAGE_RECEIVED, {"payload": payload})
                continue
            if channel.node.stopped:
                continue
            channel.emit(MESSAGE_RECEIVED, {"payload": payload})
            delivered += 1
        return delivered

    def redeliver(self, topic: str, room_id: str, payload: bytes) -> None:
        """Replay a payload to every subscriber of a room."""
        for channel in self.subscribers(topic, room_id):
            channel.emit(MESSAGE_RECEIVED, {"payload": payload})


class MemoryChannel(Channel):
    """Channel routed through a MemoryHub."""

    def __init__(
        self,
        node: "MemoryNode",
        room_id: str,
        sender_id: str,
        encoder: Encoder,
        decoder: Decoder,
    ):
        super().__init__(room_id, sender_id, encoder, decoder)
        self.node = node

    async def send(self, payload: bytes) -> str:
        handle = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        loop.call_soon(self._deliver, handle, bytes(payload))
        return handle

    def _deliver(self, handle: str, payload: bytes) -> None:
        self.emit(SENDING_MESSAGE, handle)
        if self.node.stopped:
            self.emit(
                SENDING_MESSAGE_IRRECOVERABLE_ERROR,
                {"handle": handle, "error": "node stopped"},
            )
            return
        self.emit(MESSAGE_SENT, handle)
        peers = self.node.hub.publish(self, payload)
        if peers:
            self.emit(
                MESSAGE_POSSIBLY_ACKNOWLEDGED, {"handle": handle, "count": peers}
            )
        self.emit(MESSAGE_ACKNOWLEDGED, handle)


class MemoryNode(Node):
    """
    Node attached to a MemoryHub.

    Attributes:
        hub: The hub this node routes through
        stopped: True once stop() has run
    """

    def __init__(self, hub: Optional[MemoryHub] = None):
        super().__init__()
        self.hub = hub if hub is not None else MemoryHub()
        self.stopped = False

    async def start(self) -> "MemoryNode":
        self.report_health(HealthStatus.SUFFICIENTLY_HEALTHY)
        return self

    async def create_channel(
        self, room_id: str, sender_id: str, encoder: Encoder, decoder: Decoder
    ) -> MemoryChannel:
        if self.stopped:
            raise ConnectionError("Memory node is stopped")
        channel = MemoryChannel(self, room_id, sender_id, encoder, decoder)
        self.hub.subscribe(channel)
        logger.debug(f"Memory channel created for room {room_id}")
        return channel

    async def stop(self) -> None:
        self.stopped = True
        self.report_health(HealthStatus.UNHEALTHY)
