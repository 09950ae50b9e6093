"""Single-slot holder for a "retry once permission is granted" callback.

The host UI asks the user for read access asynchronously and reports the
answer later.  Only one pending callback is kept: registering a second one
before the first is resolved replaces it (latest wins) and logs a warning.
Concurrent permission requests are therefore not queued; callers that need
that must serialize their requests themselves.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from loguru import logger

from .models import MetricType

PermissionCallback = Callable[[set[MetricType]], None]
"""Invoked with the set of granted metric types once the host reports back."""


class PermissionRequestSlot:
    """Holds at most one pending permission callback."""

    def __init__(self) -> None:
        self._callback: PermissionCallback | None = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._callback is not None

    def register(self, callback: PermissionCallback) -> bool:
        """Store ``callback``; return True if it overwrote an unresolved one."""
        with self._lock:
            replaced = self._callback is not None
            self._callback = callback
        if replaced:
            logger.warning("Pending permission callback overwritten by a newer request")
        return replaced

    def resolve(self, granted: set[MetricType]) -> bool:
        """Fire and clear the pending callback.  Returns False if nothing was pending."""
        with self._lock:
            callback, self._callback = self._callback, None
        if callback is None:
            logger.debug("Permission result arrived with no pending callback")
            return False
        callback(set(granted))
        return True

    def clear(self) -> None:
        with self._lock:
            self._callback = None
