"""
Session Manager for the Channel Layer

This module owns the single transport node shared by every room and the
per-room state built around it. It is the entry point for applications:
join a room, listen to it, send to it, leave it.

Architecture:
    - One node, one encoder/decoder pair, one routing topic for all rooms;
      room isolation comes from the transport's channel concept
    - One Room aggregate per joined room (channel, listeners, dedup store,
      delivery tracker), held in an index owned by the manager
    - Receive path: decode -> content identity -> dedup check -> fan-out;
      every decision is mirrored to the observability bus
    - Suspension points are node initialization, channel creation and
      transport send; the receive path never awaits

Usage:
    session = SessionManager(ClientConfig.from_env())
    await session.join("R1", "user-1")
    session.on_message("R1", print)
    handle = await session.send("R1", make_envelope("PING", "user-1", {}))
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .codec import decode, encode
from .config import ClientConfig
from .dedup import DEFAULT_POLICY, DedupPolicy, DeduplicationStore
from .delivery import DeliveryTracker, MessageCallbacks
from .errors import DecodeError, InitializationError, NotJoinedError
from .events import (
    CHANNEL_JOINED,
    CHANNEL_LEFT,
    DECODE_ERROR,
    DUPLICATE_MESSAGE,
    LISTENER_ERROR,
    MESSAGE_RECEIVED,
    Direction,
    EventBus,
    SDSEvent,
)
from .health import HealthMonitor
from .identity import identity_of_envelope
from .schemas import Envelope, MessageType, make_envelope
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from .transport import HEALTH, Channel, Decoder, Encoder, Node, create_node
from .transport.base import MESSAGE_RECEIVED as TRANSPORT_MESSAGE_RECEIVED

logger = logging.getLogger(__name__)

MessageListener = Callable[[Envelope], None]
NodeFactory = Callable[[ClientConfig], Awaitable[Node]]


@dataclass
class Room:
    """
    Everything held in memory for one joined room.

    Attributes:
        room_id: Room (instance) ID
        sender_id: Local participant ID used when joining
        channel: Transport channel for the room
        dedup: Seen content identities
        tracker: Outstanding sends and their callbacks
        listeners: Application message listeners
    """

    room_id: str
    sender_id: str
    channel: Channel
    dedup: DeduplicationStore
    tracker: DeliveryTracker
    listeners: Set[MessageListener] = field(default_factory=set)
    receive_handler: Optional[Callable[[Any], None]] = None


class SessionManager:
    """
    Multiplexes many rooms over one transport node.

    Attributes:
        config: Channel layer settings
        events: Observability bus
        dedup_policy: Which message kinds have persisted dedup history
        node: The shared transport node (None until initialized)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        node_factory: Optional[NodeFactory] = None,
        storage: Optional[KeyValueStorage] = None,
        event_bus: Optional[EventBus] = None,
        dedup_policy: Optional[DedupPolicy] = None,
    ):
        """
        Initialize the session manager. No I/O happens until initialize().

        Args:
            config: Channel layer settings (defaults to ClientConfig())
            node_factory: Coroutine function creating a started Node from
                          the config (for dependency injection/testing)
            storage: Persistence backend for dedup history; defaults to
                     a JsonFileStorage at config.storage_path, or memory
            event_bus: Observability bus to publish to
            dedup_policy: Persistence policy per message kind
        """
        self.config = config or ClientConfig()
        self._node_factory = node_factory or create_node
        if storage is not None:
            self._storage = storage
        elif self.config.storage_path:
            self._storage = JsonFileStorage(self.config.storage_path)
        else:
            self._storage = MemoryStorage()
        self.events = event_bus or EventBus(self.config.event_history)
        self.dedup_policy = dedup_policy or DEFAULT_POLICY

        self.node: Optional[Node] = None
        self.encoder: Optional[Encoder] = None
        self.decoder: Optional[Decoder] = None
        self._rooms: Dict[str, Room] = {}
        self._health = HealthMonitor()
        self._init_lock = asyncio.Lock()
        self._join_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self.node is not None

    @property
    def is_connected(self) -> bool:
        """Current health; the single source of truth for higher layers."""
        return self._health.is_healthy

    async def initialize(self) -> None:
        """
        Create the shared transport node and its encoder/decoder.

        Idempotent: later calls return immediately.

        Raises:
            InitializationError: If the node fails to start
        """
        async with self._init_lock:
            if self.node is not None:
                logger.debug("Node already initialized")
                return

            logger.info(f"Initializing {self.config.transport} node...")
            try:
                node = await self._node_factory(self.config)
            except Exception as e:
                logger.error(f"Failed to initialize node: {e}")
                raise InitializationError(
                    f"Transport node failed to start: {e}"
                ) from e

            self.encoder = node.create_encoder(self.config.topic)
            self.decoder = node.create_decoder(self.config.topic)
            node.events.add_listener(HEALTH, self._health.on_status)
            self._health.on_status(node.health)
            self.node = node
            logger.info(f"Node initialized on topic {self.config.topic}")

    async def join(self, room_id: str, sender_id: str) -> Room:
        """
        Join a room, creating its channel and in-memory state.

        Initializes the node first if needed. Joining a room that is
        already joined returns the existing Room.

        Args:
            room_id: Room (instance) ID
            sender_id: Local participant ID

        Returns:
            The Room aggregate
        """
        existing = self._rooms.get(room_id)
        if existing is not None:
            logger.debug(f"Already in room {room_id}")
            return existing

        await self.initialize()

        async with self._join_lock:
            existing = self._rooms.get(room_id)
            if existing is not None:
                return existing

            logger.info(f"Creating channel for room {room_id}")
            channel = await self.node.create_channel(
                room_id, sender_id, self.encoder, self.decoder
            )

            dedup = DeduplicationStore(
                room_id,
                storage=self._storage,
                namespace=self.config.dedup_namespace,
                max_size=self.config.max_processed_ids,
                persist_delay=self.config.persist_delay,
            )
            dedup.load()

            tracker = DeliveryTracker(room_id, self.events)
            tracker.attach(channel)

            room = Room(
                room_id=room_id,
                sender_id=sender_id,
                channel=channel,
                dedup=dedup,
                tracker=tracker,
            )
            room.receive_handler = lambda detail: self._on_received(room, detail)
            channel.add_listener(TRANSPORT_MESSAGE_RECEIVED, room.receive_handler)
            self._rooms[room_id] = room

        self.events.publish(
            Direction.IN,
            CHANNEL_JOINED,
            {"sender_id": sender_id, "known_ids": len(dedup)},
            room_id,
        )
        logger.info(f"Joined room {room_id}")
        return room

    async def leave(self, room_id: str) -> None:
        """
        Release a room's in-memory state.

        Pending dedup writes are flushed first, so a later join sees the
        room's history. Sends still in flight may report to the
        observability bus, but their callbacks no longer fire.
        """
        room = self._rooms.pop(room_id, None)
        if room is None:
            return

        logger.info(f"Leaving room {room_id}")
        if room.receive_handler is not None:
            room.channel.remove_listener(
                TRANSPORT_MESSAGE_RECEIVED, room.receive_handler
            )
        room.dedup.close()
        room.tracker.clear()
        room.listeners.clear()

        self.events.publish(Direction.OUT, CHANNEL_LEFT, {}, room_id)
        logger.info(f"Left room {room_id}")

    async def send(
        self,
        room_id: str,
        envelope: Envelope,
        sender_id: Optional[str] = None,
        callbacks: Optional[MessageCallbacks] = None,
    ) -> str:
        """
        Send an envelope to a joined room.

        Args:
            room_id: Target room
            envelope: Envelope to send
            sender_id: Sender stamped on the wire; defaults to the
                       envelope's sender, or the room's if that is empty
            callbacks: Optional lifecycle callbacks for this send

        Returns:
            The transport send-handle

        Raises:
            NotJoinedError: If the room has not been joined
        """
        room = self._require_room(room_id)

        if sender_id and sender_id != envelope.sender_id:
            envelope = replace(envelope, sender_id=sender_id)
        elif not envelope.sender_id:
            envelope = replace(envelope, sender_id=room.sender_id)

        data = encode(envelope)
        logger.info(f"Sending {envelope.type} to room {room_id}")
        handle = await room.channel.send(data)

        if self._rooms.get(room_id) is room:
            room.tracker.register(handle, callbacks)
        else:
            logger.debug(f"Room {room_id} left while sending {handle}")
        return handle

    async def send_message(
        self,
        room_id: str,
        message_type: Union[MessageType, str],
        payload: Any = None,
        callbacks: Optional[MessageCallbacks] = None,
    ) -> str:
        """Build an envelope for the room's sender and send it."""
        room = self._require_room(room_id)
        envelope = make_envelope(message_type, room.sender_id, payload)
        return await self.send(room_id, envelope, callbacks=callbacks)

    def on_message(
        self, room_id: str, listener: MessageListener
    ) -> Callable[[], None]:
        """
        Register a listener for new messages in a room.

        Messages that arrived before registration are not replayed.

        Returns:
            A callable that removes the listener

        Raises:
            NotJoinedError: If the room has not been joined
        """
        room = self._require_room(room_id)
        room.listeners.add(listener)
        return lambda: room.listeners.discard(listener)

    def on_health_change(
        self, listener: Callable[[bool], None]
    ) -> Callable[[], None]:
        """Call listener now with the current health, then on each change."""
        return self._health.subscribe(listener)

    def on_sds_event(
        self, listener: Callable[[SDSEvent], None]
    ) -> Callable[[], None]:
        """Subscribe to the observability bus."""
        return self.events.subscribe(listener)

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def joined_rooms(self) -> List[str]:
        return list(self._rooms.keys())

    async def stop(self) -> None:
        """Leave every room, stop the node and reset all shared state."""
        logger.info("Stopping session...")
        for room_id in list(self._rooms.keys()):
            await self.leave(room_id)

        if self.node is not None:
            self.node.events.remove_listener(HEALTH, self._health.on_status)
            await self.node.stop()
            self.node = None

        self.encoder = None
        self.decoder = None
        self._health.reset()
        self.events.clear()
        logger.info("Session stopped")

    def _require_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise NotJoinedError(room_id)
        return room

    def _on_received(self, room: Room, detail: Any) -> None:
        """Decode, deduplicate and fan out one inbound transport message."""
        if self._rooms.get(room.room_id) is not room:
            logger.debug(f"Dropping message for left room {room.room_id}")
            return

        if isinstance(detail, dict):
            payload = detail.get("payload")
        else:
            payload = getattr(detail, "payload", None)

        try:
            envelope = decode(payload)
        except DecodeError as e:
            logger.warning(f"Dropping undecodable message in {room.room_id}: {e}")
            self.events.publish(
                Direction.ERROR, DECODE_ERROR, {"error": str(e)}, room.room_id
            )
            return

        message_id = identity_of_envelope(envelope)
        details = {
            "message_id": message_id,
            "type": envelope.type,
            "sender_id": envelope.sender_id,
        }

        if room.dedup.has(message_id):
            logger.debug(f"Skipping duplicate message {message_id}")
            self.events.publish(
                Direction.IN, DUPLICATE_MESSAGE, details, room.room_id
            )
            return

        room.dedup.insert(message_id, persist=self.dedup_policy.persists(envelope.type))
        self.events.publish(Direction.IN, MESSAGE_RECEIVED, details, room.room_id)

        for listener in list(room.listeners):
            try:
                listener(envelope)
            except Exception as e:
                logger.exception(f"Message listener failed in {room.room_id}")
                self.events.publish(
                    Direction.ERROR,
                    LISTENER_ERROR,
                    {"message_id": message_id, "error": str(e)},
                    room.room_id,
                )
