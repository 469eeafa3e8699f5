"""Cooperative cancellation for per-item work.

Python threads cannot be killed, so a timed-out item is cancelled by
flipping a flag that every collaborator checks between network calls.
A call that is already in flight runs to completion in its worker thread;
its result is simply never recorded.
"""

from __future__ import annotations

import threading
import time

from prdigest_core.errors import ItemCancelled


class CancelToken:
    """A cancelled flag plus an optional absolute deadline (time.monotonic based)."""

    def __init__(self, timeout: float | None = None, clock=time.monotonic):
        self._clock = clock
        self._event = threading.Event()
        self.deadline = clock() + timeout if timeout is not None else None

    @classmethod
    def never(cls) -> CancelToken:
        return cls(timeout=None)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and self._clock() >= self.deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ItemCancelled("timeout")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on cancel. Returns True if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
        return self.cancelled
