"""Run-level cancellation token threaded through every network call."""

from __future__ import annotations

import threading
import time
from typing import Optional

from scripts.posture.errors import CancellationError


class CancellationToken:
    """A cancel flag with an optional overall deadline.

    Blocking waits go through wait() so that cancel() or the deadline
    interrupts them immediately.
    """

    def __init__(self, timeout_s: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_s if timeout_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError("collection run cancelled")
        if self.cancelled:
            raise CancellationError("collection run deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep for `seconds` unless cancelled first."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            self.raise_if_cancelled()
            raise CancellationError("collection run deadline exceeded")
        if self._event.wait(seconds):
            raise CancellationError("collection run cancelled")
