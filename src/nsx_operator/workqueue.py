"""Rate-limiting work queue.

A key handed to a worker is marked as processing; re-adding it while it is
processed only marks it dirty, and it is queued again once the worker calls
``done``. Two workers therefore never hold the same key at the same time.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Hashable

logger = logging.getLogger(__name__)


class ItemExponentialFailureRateLimiter:
    """Delay doubles on every failure of the same item, up to ``max_delay``."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._lock = threading.Lock()
        self._failures: dict[Hashable, int] = {}

    def when(self, item: Hashable) -> float:
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1
        # Cap the exponent so the float never overflows.
        delay = self.base_delay * (2 ** min(exp, 62))
        return min(delay, self.max_delay)

    def forget(self, item: Hashable) -> None:
        with self._lock:
            self._failures.pop(item, None)

    def num_requeues(self, item: Hashable) -> int:
        with self._lock:
            return self._failures.get(item, 0)


class RateLimitingQueue:
    def __init__(
        self,
        rate_limiter: ItemExponentialFailureRateLimiter | None = None,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.rate_limiter = rate_limiter if rate_limiter is not None else ItemExponentialFailureRateLimiter()
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._shutting_down = False

        self._waiting: list[tuple[float, int, Hashable]] = []
        self._waiting_ready_at: dict[Hashable, float] = {}
        self._seq = itertools.count()
        self._waiting_cond = threading.Condition()
        self._waiting_thread: threading.Thread | None = None

    def add(self, item: Hashable) -> None:
        with self._cond:
            if self._shutting_down or item in self._dirty:
                return
            self._dirty.add(item)
            if item in self._processing:
                return
            self._queue.append(item)
            self._cond.notify()

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def get(self, timeout: float | None = None) -> tuple[Hashable | None, bool]:
        """Block until an item is available.

        Returns:
            ``(item, shutdown)``; ``item`` is None on shutdown or timeout
        """
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait_for(lambda: self._queue or self._shutting_down, timeout)
            if not self._queue:
                return None, self._shutting_down
            item = self._queue.popleft()
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item: Hashable) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
        with self._waiting_cond:
            self._waiting_cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add_after(self, item: Hashable, delay: float) -> None:
        if self.shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return
        ready_at = self._clock() + delay
        with self._waiting_cond:
            existing = self._waiting_ready_at.get(item)
            if existing is not None and existing <= ready_at:
                return
            self._waiting_ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), item))
            if self._waiting_thread is None:
                self._waiting_thread = threading.Thread(
                    target=self._waiting_loop, name=f"workqueue-{self.name}-delay", daemon=True
                )
                self._waiting_thread.start()
            self._waiting_cond.notify()

    def add_rate_limited(self, item: Hashable) -> None:
        self.add_after(item, self.rate_limiter.when(item))

    def forget(self, item: Hashable) -> None:
        self.rate_limiter.forget(item)

    def num_requeues(self, item: Hashable) -> int:
        return self.rate_limiter.num_requeues(item)

    def _pop_ready(self) -> list[Hashable]:
        ready = []
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _, item = heapq.heappop(self._waiting)
            # Skip heap entries superseded by an earlier add_after.
            if self._waiting_ready_at.get(item) == ready_at:
                del self._waiting_ready_at[item]
                ready.append(item)
        return ready

    def _waiting_loop(self) -> None:
        while not self.shutting_down:
            with self._waiting_cond:
                ready = self._pop_ready()
                if not ready:
                    timeout = self._waiting[0][0] - self._clock() if self._waiting else None
                    self._waiting_cond.wait(timeout)
                    continue
            for item in ready:
                self.add(item)
