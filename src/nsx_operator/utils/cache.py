"""TTL cache used for derived, recomputable facts."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional


class TTLCache:
    """A small thread-safe mapping whose entries expire after ``ttl`` seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Get an object from cache if it hasn't expired.

        Args:
            key: Cache key

        Returns:
            Cached object or None if not found or expired
        """
        with self._lock:
            if key not in self._entries:
                return None
            obj, timestamp = self._entries[key]
            if self._clock() - timestamp > self._ttl:
                del self._entries[key]
                return None
            return obj

    def set(self, key: str, obj: Any) -> None:
        with self._lock:
            self._entries[key] = (obj, self._clock())

    def invalidate(self, key: Optional[str] = None) -> None:
        """Invalidate one entry, or every entry when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
