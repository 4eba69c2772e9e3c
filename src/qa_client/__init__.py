"""
Client Package

This package provides the client-side reliability layer for the Audience
Q&A system: many isolated rooms multiplexed over one reliable pub/sub
transport node, with content-addressed deduplication, delivery tracking
and an observability event stream.

Modules:
    - codec: protobuf wire encoding of the envelope
    - identity: content identity of an envelope
    - dedup: per-room bounded, persisted dedup history
    - delivery: per-room send-handle -> callback registry
    - session: the SessionManager tying the above to a transport node
    - events: the observability bus
    - transport: transport interface and bindings
"""

from .codec import decode, decode_payload, decode_typed_payload, encode
from .config import ClientConfig
from .dedup import (
    DEFAULT_POLICY,
    MAX_PROCESSED_IDS,
    DedupPolicy,
    DeduplicationStore,
    Persistence,
)
from .delivery import DeliveryState, DeliveryTracker, MessageCallbacks
from .errors import (
    ChannelLayerError,
    DecodeError,
    InitializationError,
    NotJoinedError,
    PersistenceError,
    SendError,
)
from .events import Direction, EventBus, SDSEvent
from .health import HealthMonitor
from .identity import identity_of, identity_of_envelope
from .schemas import Envelope, MessageType, make_envelope, now_ms
from .session import Room, SessionManager
from .storage import JsonFileStorage, MemoryStorage, storage_key
from .utils import generate_instance_id, generate_sender_id

__all__ = [
    # Session
    "SessionManager",
    "Room",
    "ClientConfig",
    # Wire format
    "Envelope",
    "MessageType",
    "make_envelope",
    "now_ms",
    "encode",
    "decode",
    "decode_payload",
    "decode_typed_payload",
    "identity_of",
    "identity_of_envelope",
    # Deduplication
    "DeduplicationStore",
    "DedupPolicy",
    "Persistence",
    "DEFAULT_POLICY",
    "MAX_PROCESSED_IDS",
    "MemoryStorage",
    "JsonFileStorage",
    "storage_key",
    # Delivery tracking
    "DeliveryTracker",
    "DeliveryState",
    "MessageCallbacks",
    # Observability and health
    "EventBus",
    "SDSEvent",
    "Direction",
    "HealthMonitor",
    # Errors
    "ChannelLayerError",
    "InitializationError",
    "NotJoinedError",
    "DecodeError",
    "SendError",
    "PersistenceError",
    # Helpers
    "generate_sender_id",
    "generate_instance_id",
]
