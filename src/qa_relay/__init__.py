"""
Relay Package

A minimal WebSocket fan-out relay for the channel layer's websocket
transport binding.
"""

from .server import RelayServer

__all__ = ["RelayServer"]
