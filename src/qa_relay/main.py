#!/usr/bin/env python3
"""
Audience Q&A Relay

Runs the WebSocket fan-out relay used by the websocket transport binding.
"""

import asyncio
import logging
import os
import sys

from .server import RelayServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


async def run_relay(host: str, port: int):
    """
    Run the relay until cancelled.

    Args:
        host: Host address to bind to
        port: Port to listen on
    """
    relay = RelayServer(host, port)
    await relay.start()

    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Relay shutdown requested")
    finally:
        await relay.stop()


def main():
    """Main entry point for the relay."""
    host = os.environ.get("RELAY_HOST", "0.0.0.0")
    port = int(os.environ.get("RELAY_PORT", "8765"))

    logger.info(f"Starting relay on {host}:{port}...")
    try:
        asyncio.run(run_relay(host, port))
    except KeyboardInterrupt:
        logger.info("Shutting down relay...")
        sys.exit(0)


if __name__ == "__main__":
    main()
