"""Identifier helpers for clients and Q&A instances."""

import secrets
import string

_BASE36 = string.digits + string.ascii_lowercase
_INSTANCE_CHARS = string.ascii_uppercase + string.digits


def generate_sender_id() -> str:
    """Return a random client ID such as ``user-k3j9x0a2b``."""
    return "user-" + "".join(secrets.choice(_BASE36) for _ in range(9))


def generate_instance_id(length: int = 6) -> str:
    """Return a random instance (room) ID of uppercase letters and digits."""
    return "".join(secrets.choice(_INSTANCE_CHARS) for _ in range(length))
