"""Cooperative cancellation shared between a build session and its blocking calls."""

from __future__ import annotations

import threading
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """Set-once cancellation flag.

    The token is handed to every blocking call of a session. Long waits go
    through :meth:`wait` so that a cancel from another thread (a signal
    handler, a watchdog) wakes them immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block for up to ``timeout`` seconds; return True if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled()})"
