"""
Deduplication Store

Per-room, bounded record of content identities that have already been
delivered to listeners.

Architecture:
    - Insertion-ordered map of identity -> "persist this entry" flag
    - FIFO eviction once the store holds more than ``max_size`` entries
    - Loaded from storage when a room is joined, written back in batches
      scheduled on the running event loop
    - Storage failures degrade to "no persisted history" and are logged,
      never raised; in-memory dedup stays correct for the room's lifetime

Whether a message kind is persisted is decided by a DedupPolicy. Kinds
whose effect is idempotent and re-derivable (activating or deactivating a
question) are deduplicated in memory only; kinds that create content must
be persisted so a restart does not replay a duplicate creation.
"""

import asyncio
import json
import logging
from collections import OrderedDict
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Union

from .errors import PersistenceError
from .schemas import MessageType
from .storage import KeyValueStorage, MemoryStorage, storage_key

logger = logging.getLogger(__name__)

# Maximum number of identities remembered per room
MAX_PROCESSED_IDS = 1000

DEFAULT_NAMESPACE = "waku_processed"


class Persistence(Enum):
    """Whether a message kind's identity survives a restart."""

    PERSISTED = "persisted"
    MEMORY_ONLY = "memory_only"


class DedupPolicy:
    """
    Named persistence policy per message kind.

    Attributes:
        default: Persistence used for kinds without an explicit entry
    """

    def __init__(
        self,
        overrides: Optional[Dict[Union[MessageType, str], Persistence]] = None,
        default: Persistence = Persistence.PERSISTED,
    ):
        self.default = default
        self._by_type: Dict[str, Persistence] = {}
        for message_type, persistence in (overrides or {}).items():
            self._by_type[_type_key(message_type)] = persistence

    def for_type(self, message_type: Union[MessageType, str]) -> Persistence:
        return self._by_type.get(_type_key(message_type), self.default)

    def persists(self, message_type: Union[MessageType, str]) -> bool:
        return self.for_type(message_type) is Persistence.PERSISTED


def _type_key(message_type: Union[MessageType, str]) -> str:
    if isinstance(message_type, MessageType):
        return message_type.value
    return str(message_type)


DEFAULT_POLICY = DedupPolicy(
    {
        MessageType.QUESTION_ADDED: Persistence.PERSISTED,
        MessageType.ANSWER_SUBMITTED: Persistence.PERSISTED,
        MessageType.INSTANCE_CREATED: Persistence.PERSISTED,
        MessageType.QUESTION_ACTIVATED: Persistence.MEMORY_ONLY,
        MessageType.QUESTION_DEACTIVATED: Persistence.MEMORY_ONLY,
    }
)


class DeduplicationStore:
    """
    Bounded, persisted set of seen content identities for one room.

    Attributes:
        room_id: Room this store belongs to
        max_size: Maximum number of identities kept
        key: Storage key used for persistence
    """

    def __init__(
        self,
        room_id: str,
        storage: Optional[KeyValueStorage] = None,
        namespace: str = DEFAULT_NAMESPACE,
        max_size: int = MAX_PROCESSED_IDS,
        persist_delay: float = 0.0,
    ):
        """
        Initialize an empty store. Call load() to read persisted history.

        Args:
            room_id: Room this store belongs to
            storage: Persistence backend (defaults to a private MemoryStorage)
            namespace: Prefix of the storage key
            max_size: Maximum number of identities to keep
            persist_delay: Seconds to wait before a scheduled write runs
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.room_id = room_id
        self.max_size = max_size
        self.key = storage_key(namespace, room_id)
        self._storage = storage if storage is not None else MemoryStorage()
        self._persist_delay = persist_delay
        # identity -> True when the entry must be persisted
        self._entries: "OrderedDict[str, bool]" = OrderedDict()
        self._dirty = False
        self._pending: Optional[asyncio.TimerHandle] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._entries

    def has(self, message_id: str) -> bool:
        return message_id in self._entries

    def ids(self) -> List[str]:
        """Return all identities, oldest first."""
        return list(self._entries.keys())

    def persisted_ids(self) -> List[str]:
        """Return the identities that are written to storage, oldest first."""
        return [mid for mid, persist in self._entries.items() if persist]

    @property
    def has_pending_write(self) -> bool:
        return self._dirty

    def insert(self, message_id: str, persist: bool = True) -> bool:
        """
        Record an identity as processed.

        Inserting an identity that is already present leaves the store
        unchanged, except that a memory-only entry is upgraded when
        ``persist`` is True.

        Args:
            message_id: Content identity to record
            persist: Whether the identity should be written to storage

        Returns:
            True if the identity was new, False if it was already present
        """
        if message_id in self._entries:
            if persist and not self._entries[message_id]:
                self._entries[message_id] = True
                self.schedule_persist()
            return False

        self._entries[message_id] = persist
        self._enforce_limit()
        if persist:
            self.schedule_persist()
        return True

    def load(self) -> Set[str]:
        """
        Load persisted identities for this room into the store.

        Missing or unreadable storage yields an empty set; the failure is
        logged, not raised.

        Returns:
            The set of identities read from storage
        """
        try:
            raw = self._storage.get(self.key)
        except Exception as e:
            error = PersistenceError(self.key, f"Failed to read history: {e}")
            logger.warning(f"{error}")
            return set()

        if not raw:
            return set()

        try:
            stored = json.loads(raw)
        except ValueError as e:
            logger.warning(
                f"Discarding unreadable history for room {self.room_id}: {e}"
            )
            return set()

        if not isinstance(stored, list):
            logger.warning(
                f"Discarding history for room {self.room_id}: expected a list"
            )
            return set()

        loaded = [mid for mid in stored if isinstance(mid, str)]
        for mid in loaded[-self.max_size :]:
            if mid not in self._entries:
                self._entries[mid] = True
        self._enforce_limit()

        logger.info(
            f"Loaded {len(loaded)} processed message IDs for room {self.room_id}"
        )
        return set(loaded)

    def persist(self, ids: Optional[Iterable[str]] = None) -> bool:
        """
        Write identities to storage, best-effort.

        Args:
            ids: Identities to write; defaults to the store's persisted
                 entries. At most ``max_size`` of the newest are kept.

        Returns:
            True if the write succeeded, False if it failed
        """
        to_store = list(ids) if ids is not None else self.persisted_ids()
        to_store = to_store[-self.max_size :]
        try:
            self._storage.set(self.key, json.dumps(to_store))
        except Exception as e:
            error = PersistenceError(self.key, f"Failed to save history: {e}")
            logger.warning(f"{error}")
            return False
        self._dirty = False
        return True

    def schedule_persist(self) -> None:
        """
        Mark the store dirty and schedule one batched write.

        Writes requested before the scheduled one runs are coalesced into
        it. Without a running event loop the write happens immediately.
        """
        self._dirty = True
        if self._pending is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._pending = loop.call_later(
            self._persist_delay, self._run_scheduled_write
        )

    def flush(self) -> None:
        """Run any pending write now."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._dirty:
            self.persist()

    def close(self) -> None:
        """Flush pending writes and drop the in-memory entries."""
        self.flush()
        self._entries.clear()

    def _run_scheduled_write(self) -> None:
        self._pending = None
        if self._dirty:
            self.persist()

    def _enforce_limit(self) -> None:
        """Remove the oldest identities while the store exceeds max_size."""
        excess = len(self._entries) - self.max_size
        if excess <= 0:
            return
        for _ in range(excess):
            self._entries.popitem(last=False)
        logger.debug(
            f"Evicted {excess} oldest message IDs for room {self.room_id}"
        )
