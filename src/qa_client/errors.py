"""
Error Types for the Channel Layer

Errors that affect a single message or a single send are reported through
callbacks and the observability bus. Only errors that affect the shared
transport node, or programmer errors, are raised to the caller.
"""

from typing import Any, Optional


class ChannelLayerError(Exception):
    """Base class for all errors raised by the channel layer."""


class InitializationError(ChannelLayerError):
    """The shared transport node could not be started."""


class NotJoinedError(ChannelLayerError):
    """
    An operation was attempted on a room that has not been joined.

    Attributes:
        room_id: ID of the room the caller referenced
    """

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(
            f"Not joined to room '{room_id}'. Call join() first."
        )


class DecodeError(ChannelLayerError):
    """
    An inbound payload could not be decoded.

    Attributes:
        inner: The underlying parser error, if any
    """

    def __init__(self, message: str, inner: Optional[BaseException] = None):
        self.inner = inner
        super().__init__(message)


class SendError(ChannelLayerError):
    """
    The transport reported an irrecoverable failure for one send.

    Never raised by the layer itself; instances are handed to the
    ``on_error`` callback registered for the failing handle.

    Attributes:
        handle: Transport send-handle of the failed message
        error: Error detail reported by the transport
    """

    def __init__(self, handle: str, error: Any = None):
        self.handle = handle
        self.error = error
        super().__init__(f"Irrecoverable send error for {handle}: {error}")


class PersistenceError(ChannelLayerError):
    """
    A read or write against the persistence backend failed.

    Always caught and logged inside the layer.

    Attributes:
        key: Storage key involved in the failure
    """

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{message} (key: {key})")
