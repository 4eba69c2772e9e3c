"""
Transport Package

The channel layer's view of the reliable pub/sub transport: the abstract
Node/Channel interface and two bindings (in-process loopback and a
WebSocket relay client).
"""

import logging
from typing import Optional

from .base import (
    HEALTH,
    IRRETRIEVABLE_MESSAGE,
    LIFECYCLE_EVENTS,
    MESSAGE_ACKNOWLEDGED,
    MESSAGE_POSSIBLY_ACKNOWLEDGED,
    MESSAGE_RECEIVED,
    MESSAGE_SENT,
    SENDING_MESSAGE,
    SENDING_MESSAGE_IRRECOVERABLE_ERROR,
    Channel,
    Decoder,
    Encoder,
    EventEmitter,
    HealthStatus,
    Node,
)
from .memory import MemoryChannel, MemoryHub, MemoryNode
from .websocket import WebSocketChannel, WebSocketNode

logger = logging.getLogger(__name__)


async def create_node(config, hub: Optional[MemoryHub] = None) -> Node:
    """
    Create and start a transport node for the configured binding.

    Args:
        config: ClientConfig; ``transport`` selects the binding and
                ``bootstrap`` whether to connect on start
        hub: Hub for the memory binding (a new one if omitted)

    Returns:
        A started Node

    Raises:
        ValueError: If the configured transport is unknown
        ConnectionError: If the node cannot connect
    """
    if config.transport == "memory":
        node = MemoryNode(hub)
    elif config.transport == "websocket":
        node = WebSocketNode(config.relay_url)
    else:
        raise ValueError(f"Unknown transport: {config.transport}")

    if config.bootstrap:
        await node.start()
    else:
        logger.info(f"Bootstrap disabled; {config.transport} node not started")
    return node


__all__ = [
    "Channel",
    "Decoder",
    "Encoder",
    "EventEmitter",
    "HealthStatus",
    "Node",
    "MemoryChannel",
    "MemoryHub",
    "MemoryNode",
    "WebSocketChannel",
    "WebSocketNode",
    "create_node",
    "HEALTH",
    "IRRETRIEVABLE_MESSAGE",
    "LIFECYCLE_EVENTS",
    "MESSAGE_ACKNOWLEDGED",
    "MESSAGE_POSSIBLY_ACKNOWLEDGED",
    "MESSAGE_RECEIVED",
    "MESSAGE_SENT",
    "SENDING_MESSAGE",
    "SENDING_MESSAGE_IRRECOVERABLE_ERROR",
]
