"""
Envelope Schema Definitions

This module defines the application envelope exchanged over the transport
and the domain message kinds it can carry.

The envelope has exactly four fields: type, timestamp, sender_id and
payload. The payload is an opaque string (application-defined JSON); the
envelope itself never interprets it.
"""

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .base import BasePayload


class MessageType(str, Enum):
    """Domain message kinds exchanged inside a Q&A instance."""

    QUESTION_ADDED = "QUESTION_ADDED"
    QUESTION_ACTIVATED = "QUESTION_ACTIVATED"
    QUESTION_DEACTIVATED = "QUESTION_DEACTIVATED"
    ANSWER_SUBMITTED = "ANSWER_SUBMITTED"
    INSTANCE_CREATED = "INSTANCE_CREATED"


@dataclass(frozen=True)
class Envelope:
    """
    Application envelope, immutable once built.

    Attributes:
        type: Message kind (a MessageType value or any other string)
        timestamp: Epoch milliseconds set by the sender
        sender_id: ID of the sending client
        payload: Serialized payload, usually JSON text
    """

    type: str
    timestamp: int
    sender_id: str
    payload: str = ""


def now_ms() -> int:
    return int(time.time() * 1000)


def _type_value(message_type: Union[MessageType, str]) -> str:
    if isinstance(message_type, MessageType):
        return message_type.value
    return str(message_type)


def make_envelope(
    message_type: Union[MessageType, str],
    sender_id: str,
    payload: Any = None,
    timestamp: Optional[int] = None,
) -> Envelope:
    """
    Build an envelope, serializing a structured payload canonically.

    Args:
        message_type: Message kind
        sender_id: ID of the sending client
        payload: A string (used as-is), a BasePayload, or any
                 JSON-serializable value
        timestamp: Epoch milliseconds; defaults to the current time

    Returns:
        Envelope ready for encoding
    """
    if isinstance(payload, str):
        text = payload
    elif isinstance(payload, BasePayload):
        text = payload.to_json()
    elif payload is None:
        text = "{}"
    else:
        text = json.dumps(payload, sort_keys=True, separators=(",", ":"))

    return Envelope(
        type=_type_value(message_type),
        timestamp=now_ms() if timestamp is None else int(timestamp),
        sender_id=sender_id,
        payload=text,
    )
