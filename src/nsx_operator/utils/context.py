"""Correlation IDs and cancellable reconcile contexts."""

from __future__ import annotations

import contextvars
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator

from .errors import ReconcileCancelled

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation ID in the current context."""
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.

    Args:
        corr_id: Correlation ID to use

    Yields:
        The correlation ID
    """
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values, including correlation_id when set."""
    ctx: dict[str, Any] = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    if additional:
        ctx.update(additional)

    return ctx


class ReconcileContext:
    """Cancellation token with an optional deadline.

    Every blocking backend call made on behalf of a reconcile consults the
    context. A child context shares its parent's cancellation and never
    outlives the parent's deadline.
    """

    def __init__(
        self,
        timeout: float | None = None,
        parent: ReconcileContext | None = None,
        clock: Any = time.monotonic,
    ) -> None:
        self._clock = clock
        self._event = parent._event if parent is not None else threading.Event()
        deadline = clock() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline: float | None = deadline

    @classmethod
    def background(cls) -> ReconcileContext:
        """A context that is never cancelled and has no deadline."""
        return cls()

    def with_timeout(self, timeout: float) -> ReconcileContext:
        return ReconcileContext(timeout=timeout, parent=self, clock=self._clock)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def done(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        """Raise ReconcileCancelled when the context is cancelled or expired."""
        if self.cancelled:
            raise ReconcileCancelled("reconcile context cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise ReconcileCancelled("reconcile context deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early (and raising) on cancellation."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        self.check()

    def timeout(self, default: float) -> float:
        """A per-call timeout that never exceeds the context deadline."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(0.001, min(default, remaining))
