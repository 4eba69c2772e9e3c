"""
Content Identity

Deterministic fingerprint of an envelope's semantic fields, used as the
system of record for deduplication. Transport-assigned message hashes are
not used, since they may be missing or may differ between logically
identical resends.

The identity is stable across process restarts: it depends only on the
field values, never on object identity or runtime-local randomness.
"""

import hashlib
from typing import Union

from .schemas import Envelope, MessageType

# 64-bit digest; collisions merge two distinct messages into one
DIGEST_SIZE = 8


def _frame(value: str) -> str:
    return f"{len(value)}:{value}"


def identity_of(
    message_type: Union[MessageType, str],
    timestamp: int,
    sender_id: str,
    payload: str,
) -> str:
    """
    Compute the content identity of a message.

    Each field is length-prefixed before hashing so that no separator
    inside a field can make two different field tuples collide. The raw
    timestamp is appended to the digest.

    Args:
        message_type: Message kind
        timestamp: Epoch milliseconds from the envelope
        sender_id: Sender ID from the envelope
        payload: Serialized payload from the envelope

    Returns:
        Identity string of the form ``"<hex digest>_<timestamp>"``
    """
    if isinstance(message_type, MessageType):
        message_type = message_type.value
    content = "".join(
        _frame(part)
        for part in (str(message_type), str(timestamp), sender_id, payload)
    )
    digest = hashlib.blake2b(
        content.encode("utf-8"), digest_size=DIGEST_SIZE
    ).hexdigest()
    return f"{digest}_{timestamp}"


def identity_of_envelope(envelope: Envelope) -> str:
    """Compute the content identity of a decoded envelope."""
    return identity_of(
        envelope.type, envelope.timestamp, envelope.sender_id, envelope.payload
    )
