#!/usr/bin/env python3
"""
Audience Q&A Channel Client

Joins one room and bridges it to the terminal: every line read from stdin
is sent as a message, every delivered message is printed.

Usage:
    qa-client --room ABC123
    qa-client --room ABC123 --transport websocket --relay ws://localhost:8765
    qa-client --room ABC123 --console      # also print SDS events
"""

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import Optional

from .codec import decode_typed_payload
from .config import ClientConfig
from .delivery import MessageCallbacks
from .errors import ChannelLayerError, DecodeError
from .events import SDSEvent
from .schemas import Envelope, MessageType
from .session import SessionManager
from .utils import generate_sender_id

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audience Q&A channel client")
    parser.add_argument("--room", required=True, help="Room (instance) ID")
    parser.add_argument(
        "--sender", default=None, help="Sender ID (random if omitted)"
    )
    parser.add_argument(
        "--transport",
        choices=("memory", "websocket"),
        default=None,
        help="Transport binding (default: QA_TRANSPORT or memory)",
    )
    parser.add_argument("--relay", default=None, help="Relay WebSocket URL")
    parser.add_argument(
        "--type",
        default=MessageType.ANSWER_SUBMITTED.value,
        help="Message kind used for lines read from stdin",
    )
    parser.add_argument(
        "--console", action="store_true", help="Print observability events"
    )
    return parser.parse_args(argv)


def build_config(
    args: argparse.Namespace, base: Optional[ClientConfig] = None
) -> ClientConfig:
    """Apply command-line overrides on top of the environment settings."""
    config = base or ClientConfig.from_env()
    overrides = {}
    if args.transport:
        overrides["transport"] = args.transport
    if args.relay:
        overrides["relay_url"] = args.relay
    return dataclasses.replace(config, **overrides)


def print_message(envelope: Envelope) -> None:
    try:
        body = decode_typed_payload(envelope)
    except DecodeError:
        body = envelope.payload
    print(f"[{envelope.type}] {envelope.sender_id}: {body}", flush=True)


def print_event(event: SDSEvent) -> None:
    print(
        f"  <{event.direction.value}> {event.event} {event.details}",
        file=sys.stderr,
        flush=True,
    )


def _callbacks_for(line_no: int) -> MessageCallbacks:
    return MessageCallbacks(
        on_sent=lambda: logger.info(f"Line {line_no} sent"),
        on_acknowledged=lambda: logger.info(f"Line {line_no} acknowledged"),
        on_error=lambda error: logger.error(f"Line {line_no} failed: {error}"),
    )


async def run_client(args: argparse.Namespace) -> None:
    config = build_config(args)
    sender_id = args.sender or generate_sender_id()
    session = SessionManager(config)

    session.on_health_change(
        lambda healthy: logger.info(f"Connected: {healthy}")
    )
    if args.console:
        session.on_sds_event(print_event)

    await session.join(args.room, sender_id)
    session.on_message(args.room, print_message)
    logger.info(f"Joined {args.room} as {sender_id}")

    loop = asyncio.get_running_loop()
    line_no = 0
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            text = line.rstrip("\n")
            if not text:
                continue
            line_no += 1
            await session.send_message(
                args.room, args.type, {"text": text}, _callbacks_for(line_no)
            )
    finally:
        await session.stop()


def main():
    """Main entry point for the channel client."""
    args = parse_args()
    logging.basicConfig(
        level=ClientConfig.from_env().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(run_client(args))
    except ChannelLayerError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
