"""
Client Configuration

Settings for the channel layer, read from ``QA_*`` environment variables
with defaults suitable for a local, single-process setup.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Single routing topic shared by every room
DEFAULT_TOPIC = "/audience-qa/1/data/proto"
DEFAULT_RELAY_URL = "ws://localhost:8765"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class ClientConfig:
    """
    Channel layer settings.

    Attributes:
        topic: Routing topic shared by all rooms
        bootstrap: Whether the node connects on creation
        transport: Transport binding, "memory" or "websocket"
        relay_url: Relay address for the websocket binding
        storage_path: JSON file for dedup history; None keeps it in memory
        dedup_namespace: Prefix of dedup storage keys
        max_processed_ids: Identities remembered per room
        persist_delay: Seconds before a batched history write runs
        event_history: Observability events kept for late subscribers
        log_level: Logging level name for the entry points
    """

    topic: str = DEFAULT_TOPIC
    bootstrap: bool = True
    transport: str = "memory"
    relay_url: str = DEFAULT_RELAY_URL
    storage_path: Optional[str] = None
    dedup_namespace: str = "waku_processed"
    max_processed_ids: int = 1000
    persist_delay: float = 0.0
    event_history: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Recognized: QA_TOPIC, QA_BOOTSTRAP, QA_TRANSPORT, QA_RELAY_URL,
        QA_STORAGE_PATH, QA_DEDUP_NAMESPACE, QA_MAX_PROCESSED_IDS,
        QA_PERSIST_DELAY, QA_EVENT_HISTORY, QA_LOG_LEVEL.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            topic=env.get("QA_TOPIC", defaults.topic),
            bootstrap=_env_bool(env.get("QA_BOOTSTRAP"), defaults.bootstrap),
            transport=env.get("QA_TRANSPORT", defaults.transport).strip().lower(),
            relay_url=env.get("QA_RELAY_URL", defaults.relay_url),
            storage_path=env.get("QA_STORAGE_PATH") or None,
            dedup_namespace=env.get(
                "QA_DEDUP_NAMESPACE", defaults.dedup_namespace
            ),
            max_processed_ids=int(
                env.get("QA_MAX_PROCESSED_IDS", defaults.max_processed_ids)
            ),
            persist_delay=float(
                env.get("QA_PERSIST_DELAY", defaults.persist_delay)
            ),
            event_history=int(env.get("QA_EVENT_HISTORY", defaults.event_history)),
            log_level=env.get("QA_LOG_LEVEL", defaults.log_level),
        )
