"""Rate limiting utilities for API calls."""

from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Spaces calls at least ``1 / per_second`` seconds apart.

    Shared by every thread calling through the same client instance.
    """

    def __init__(
        self,
        per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval = 1.0 / per_second if per_second > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def acquire(self) -> float:
        """Block until the caller may proceed. Returns the time slept."""
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self._min_interval
        wait = slot - now
        if wait > 0:
            self._sleep(wait)
        return wait


def is_rate_limit_status(status: int | None) -> bool:
    """Return True for HTTP statuses that signal throttling."""
    return status in (429, 503)
