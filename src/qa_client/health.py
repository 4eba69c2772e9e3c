"""
Process-wide connection health.

One boolean derived from the transport node's health events. Listeners are
notified only when the boolean changes, not on every event.
"""

import logging
from typing import Callable, Set

from .transport.base import HealthStatus

logger = logging.getLogger(__name__)

HealthListener = Callable[[bool], None]


class HealthMonitor:
    """Tracks whether the shared transport node is sufficiently healthy."""

    def __init__(self):
        self._healthy = False
        self._listeners: Set[HealthListener] = set()

    @property
    def is_healthy(self) -> bool:
        return self._healthy

    def subscribe(self, listener: HealthListener) -> Callable[[], None]:
        """
        Register a listener and call it at once with the current state.

        Returns:
            A callable that removes the listener
        """
        self._listeners.add(listener)
        self._call(listener, self._healthy)
        return lambda: self._listeners.discard(listener)

    def on_status(self, status) -> None:
        """Handle a transport health event."""
        try:
            healthy = HealthStatus(status) is HealthStatus.SUFFICIENTLY_HEALTHY
        except ValueError:
            logger.warning(f"Ignoring unknown health status: {status!r}")
            return
        self.set_healthy(healthy)

    def set_healthy(self, healthy: bool) -> None:
        if healthy == self._healthy:
            return
        self._healthy = healthy
        logger.info(f"Connection health changed: {healthy}")
        for listener in list(self._listeners):
            self._call(listener, healthy)

    def reset(self) -> None:
        """Forget all listeners and return to unhealthy, silently."""
        self._listeners.clear()
        self._healthy = False

    @staticmethod
    def _call(listener: HealthListener, healthy: bool) -> None:
        try:
            listener(healthy)
        except Exception:
            logger.exception("Health listener failed")
