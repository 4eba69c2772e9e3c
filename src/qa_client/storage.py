"""
Key-Value Storage Backends

The channel layer persists deduplication history through a minimal
string key-value interface (``get`` / ``set``). Two backends are provided:

    - MemoryStorage: a plain dict, for tests and ephemeral clients
    - JsonFileStorage: a single JSON object file with atomic replacement

Backends may raise on failure; callers in this package treat every storage
error as best-effort and swallow it.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Persistence collaborator consumed by the deduplication store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


def storage_key(namespace: str, room_id: str) -> str:
    """Build the storage key for a room: ``"<namespace>_<room_id>"``."""
    return f"{namespace}_{room_id}"


class MemoryStorage:
    """In-process storage backed by a dict."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class JsonFileStorage:
    """
    Storage backed by one JSON object file.

    Every ``set`` rewrites the whole file through a temporary file and
    ``os.replace``, so a crash mid-write leaves the previous content intact.

    Attributes:
        path: Location of the JSON file
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(os.path.expanduser(str(path)))

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def _atomic_write(self, data: Dict[str, str]) -> None:
        if self.path.parent:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, separators=(",", ":"), sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        """
        Store a value, rewriting the file atomically.

        A file that cannot be parsed as a JSON object is replaced by a
        fresh one holding only this key.
        """
        try:
            data = self._read()
        except ValueError as e:
            logger.warning(f"Replacing unreadable storage file {self.path}: {e}")
            data = {}
        data[key] = value
        self._atomic_write(data)
        logger.debug(f"Stored {len(value)} bytes under {key}")
