"""
WebSocket Transport Binding

Connects a node to a ``qa_relay`` server over a single WebSocket and
multiplexes every room's channel over it.

Frames are JSON objects:
    {"op": "subscribe", "topic": ..., "channel": ...}
    {"op": "publish", "topic": ..., "channel": ..., "origin": ...,
     "handle": ..., "payload": <base64>}

The relay broadcasts each publish to every subscriber of the same
(topic, channel), the publisher included. The publisher's own echo is the
acknowledgement for that handle; everyone else sees a message-received.

Architecture:
    - One reader task per node dispatches inbound frames to channels
    - Sends run as tasks so lifecycle events fire after send() returns
    - An echo that overtakes its own write is held until message-sent
      has fired, so every acknowledged send was first reported sent
    - Channels are held weakly, as the in-process hub does
    - Health is SufficientlyHealthy while the socket is open
"""

import asyncio
import base64
import json
import logging
import uuid
import weakref
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import websockets

from .base import (
    MESSAGE_ACKNOWLEDGED,
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


class WebSocketChannel(Channel):
    """Channel whose payloads travel through the node's relay socket."""

    def __init__(
        self,
        node: "WebSocketNode",
        room_id: str,
        sender_id: str,
        encoder: Encoder,
        decoder: Decoder,
    ):
        super().__init__(room_id, sender_id, encoder, decoder)
        self.node = node
        # handles awaiting their relay echo
        self._outstanding: Set[str] = set()
        # handles whose write has returned
        self._written: Set[str] = set()
        # echoes that arrived before the write returned
        self._early_echoes: Set[str] = set()

    async def send(self, payload: bytes) -> str:
        handle = uuid.uuid4().hex
        self._outstanding.add(handle)
        self.node._spawn(self._transmit(handle, bytes(payload)))
        return handle

    async def _transmit(self, handle: str, payload: bytes) -> None:
        self.emit(SENDING_MESSAGE, handle)
        frame = {
            "op": "publish",
            "topic": self.encoder.topic,
            "channel": self.room_id,
            "origin": self.node.node_id,
            "handle": handle,
            "payload": base64.b64encode(payload).decode("ascii"),
        }
        try:
            await self.node._send_frame(frame)
        except Exception as e:
            self._outstanding.discard(handle)
            self._early_echoes.discard(handle)
            logger.error(f"Failed to publish {handle}: {e}")
            self.emit(
                SENDING_MESSAGE_IRRECOVERABLE_ERROR,
                {"handle": handle, "error": str(e)},
            )
            return
        self._written.add(handle)
        self.emit(MESSAGE_SENT, handle)
        if handle in self._early_echoes:
            self._acknowledge(handle)

    def _on_frame(self, frame: Dict[str, Any]) -> None:
        handle = frame.get("handle")
        if frame.get("origin") == self.node.node_id and handle in self._outstanding:
            if handle in self._written:
                self._acknowledge(handle)
            else:
                self._early_echoes.add(handle)
            return
        try:
            payload = base64.b64decode(frame.get("payload", ""), validate=True)
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping frame with invalid payload: {e}")
            return
        self.emit(MESSAGE_RECEIVED, {"payload": payload})

    def _acknowledge(self, handle: str) -> None:
        self._outstanding.discard(handle)
        self._written.discard(handle)
        self._early_echoes.discard(handle)
        self.emit(MESSAGE_ACKNOWLEDGED, handle)


class WebSocketNode(Node):
    """
    Node backed by one WebSocket connection to a relay.

    Attributes:
        url: Relay WebSocket URL
        node_id: Random per-process ID used to recognize our own echoes
    """

    def __init__(self, url: str, websocket_factory: Optional[Callable] = None):
        """
        Args:
            url: Relay WebSocket URL (e.g. ws://localhost:8765)
            websocket_factory: Optional factory for creating WebSocket
                               connections (for dependency injection/testing)
        """
        super().__init__()
        self.url = url
        self.node_id = uuid.uuid4().hex
        self.websocket = None
        self._websocket_factory = websocket_factory or websockets.connect
        # Channels are held weakly; a released room drops out on collection
        self._channels: "weakref.WeakValueDictionary[Tuple[str, str], WebSocketChannel]" = (
            weakref.WeakValueDictionary()
        )
        self._reader: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self) -> "WebSocketNode":
        """
        Connect to the relay and start the reader task.

        Raises:
            ConnectionError: If the relay cannot be reached
        """
        try:
            logger.info(f"Connecting to relay {self.url}...")
            self.websocket = await self._websocket_factory(self.url)
        except Exception as e:
            logger.error(f"Failed to connect to relay: {e}")
            raise ConnectionError(f"Could not connect to {self.url}: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())
        self.report_health(HealthStatus.SUFFICIENTLY_HEALTHY)
        return self

    async def create_channel(
        self, room_id: str, sender_id: str, encoder: Encoder, decoder: Decoder
    ) -> WebSocketChannel:
        if self.websocket is None:
            raise ConnectionError("Not connected to a relay")
        channel = WebSocketChannel(self, room_id, sender_id, encoder, decoder)
        self._channels[(decoder.topic, room_id)] = channel
        await self._send_frame(
            {"op": "subscribe", "topic": decoder.topic, "channel": room_id}
        )
        logger.info(f"Subscribed to channel {room_id}")
        return channel

    def channels(self) -> List[WebSocketChannel]:
        """Return the channels still alive on this node."""
        return list(self._channels.values())

    async def stop(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        for task in list(self._tasks):
            task.cancel()
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
        self._channels.clear()
        self.report_health(HealthStatus.UNHEALTHY)
        logger.info("Disconnected from relay")

    async def _send_frame(self, frame: Dict[str, Any]) -> None:
        if self.websocket is None:
            raise ConnectionError("Not connected to a relay")
        await self.websocket.send(json.dumps(frame))

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read_loop(self) -> None:
        try:
            async for message in self.websocket:
                self._dispatch(message)
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Connection closed by relay")
        finally:
            if self.health is not HealthStatus.UNHEALTHY:
                self.report_health(HealthStatus.UNHEALTHY)

    def _dispatch(self, message) -> None:
        try:
            frame = json.loads(message)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed relay frame: {e}")
            return
        if not isinstance(frame, dict) or frame.get("op") != "publish":
            logger.debug(f"Ignoring relay frame: {frame!r}")
            return
        channel = self._channels.get((frame.get("topic"), frame.get("channel")))
        if channel is None:
            logger.debug(f"No channel for frame on {frame.get('channel')}")
            return
        channel._on_frame(frame)
