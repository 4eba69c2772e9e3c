"""
WebSocket Relay Server

Fan-out relay used by the websocket transport binding. Clients subscribe to
(topic, channel) pairs and publish opaque frames; each publish is broadcast
to every subscriber of the pair, the publisher included, so the publisher
can treat its own echo as the acknowledgement.

The relay keeps no history and does not interpret payloads.
"""

import json
import logging
from typing import Any, Dict, Optional, Set, Tuple

import websockets

logger = logging.getLogger(__name__)

Subscription = Tuple[str, str]


class RelayServer:
    """
    WebSocket server broadcasting frames within (topic, channel) pairs.

    Attributes:
        host: Host address to bind to
        port: Port to listen on (0 picks a free port)
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.server = None
        self.clients: Set[Any] = set()
        # Maps (topic, channel) -> set of websockets
        self._subscribers: Dict[Subscription, Set[Any]] = {}
        # Maps websocket -> set of (topic, channel)
        self._client_subscriptions: Dict[Any, Set[Subscription]] = {}

    async def start(self):
        """Start the relay server."""
        self.server = await websockets.serve(
            self.handle_client, self.host, self.port
        )
        self.port = self.bound_port or self.port
        logger.info(f"Relay server started on ws://{self.host}:{self.port}")

    async def stop(self):
        """Stop the relay server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("Relay server stopped")

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when started with port 0."""
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    def subscribe(self, websocket, topic: str, channel: str) -> None:
        key = (topic, channel)
        self._subscribers.setdefault(key, set()).add(websocket)
        self._client_subscriptions.setdefault(websocket, set()).add(key)

    def unsubscribe_all(self, websocket) -> None:
        for key in self._client_subscriptions.pop(websocket, set()):
            subscribers = self._subscribers.get(key)
            if subscribers is not None:
                subscribers.discard(websocket)
                if not subscribers:
                    del self._subscribers[key]

    def subscriber_count(self, topic: str, channel: str) -> int:
        return len(self._subscribers.get((topic, channel), ()))

    async def broadcast(self, topic: str, channel: str, frame: Dict[str, Any]) -> int:
        """
        Send a frame to every subscriber of (topic, channel).

        Returns:
            Number of subscribers the frame was written to
        """
        message = json.dumps(frame)
        delivered = 0
        for websocket in list(self._subscribers.get((topic, channel), ())):
            try:
                await websocket.send(message)
                delivered += 1
            except websockets.exceptions.ConnectionClosed:
                pass
        return delivered

    async def handle_client(self, websocket):
        """
        Handle a client connection.

        Args:
            websocket: The WebSocket connection
        """
        self.clients.add(websocket)
        client_id = id(websocket)
        logger.info(f"Client {client_id} connected")

        try:
            async for message in websocket:
                await self.handle_frame(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Client {client_id} connection closed")
        finally:
            self.unsubscribe_all(websocket)
            self.clients.discard(websocket)
            logger.info(f"Client {client_id} disconnected")

    async def handle_frame(self, websocket, message) -> None:
        """Process one frame from a client."""
        try:
            frame = json.loads(message)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON frame")
            return
        if not isinstance(frame, dict):
            logger.warning("Ignoring frame that is not an object")
            return

        op = frame.get("op")
        topic = frame.get("topic")
        channel = frame.get("channel")
        if not isinstance(topic, str) or not isinstance(channel, str):
            logger.warning(f"Ignoring {op} frame without topic/channel")
            return

        if op == "subscribe":
            self.subscribe(websocket, topic, channel)
            logger.debug(f"Client {id(websocket)} subscribed to {channel}")
        elif op == "publish":
            delivered = await self.broadcast(topic, channel, frame)
            logger.debug(f"Relayed frame on {channel} to {delivered} clients")
        else:
            logger.warning(f"Unknown relay op: {op}")
