"""Bounded polling of NSX realization state."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator

from . import metrics
from .constants import REALIZED_STATE_ERROR, REALIZED_STATE_REALIZED
from .tracing import trace_span
from .utils.context import ReconcileContext
from .utils.errors import (
    BackendUnavailableError,
    NotFoundError,
    RealizationTimeoutError,
    RealizeStateError,
    ReconcileCancelled,
)

if TYPE_CHECKING:
    from .config import OperatorConfig
    from .services.nsx.base import NSXProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backoff:
    """Exponential retry policy: ``steps`` attempts, waits growing by ``factor``."""

    steps: int = 6
    duration: float = 1.0
    factor: float = 2.0
    jitter: float = 0.0
    cap: float | None = None

    @classmethod
    def from_config(cls, config: OperatorConfig) -> Backoff:
        return cls(
            steps=config.realize_steps,
            duration=config.realize_interval_seconds,
            factor=config.realize_factor,
        )

    def delays(self) -> Iterator[float]:
        """Waits between consecutive attempts (``steps - 1`` of them)."""
        duration = self.duration
        for _ in range(max(self.steps - 1, 0)):
            delay = duration
            if self.jitter > 0:
                delay += random.uniform(0, self.jitter * duration)
            if self.cap is not None:
                delay = min(delay, self.cap)
            yield delay
            duration *= self.factor


class _NotRealized(Exception):
    pass


class RealizeStateService:
    """Waits for NSX to realize an intent path."""

    def __init__(
        self,
        nsx_client: NSXProvider,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.nsx_client = nsx_client
        self.timeout = timeout
        self._clock = clock

    def check_realize_state(
        self,
        backoff: Backoff,
        intent_path: str,
        entity_type: str,
        ctx: ReconcileContext | None = None,
    ) -> None:
        """Poll until ``entity_type`` under ``intent_path`` is REALIZED.

        Raises:
            RealizeStateError: NSX reported the ERROR state (never retried)
            RealizationTimeoutError: attempts or time ran out without success
            ReconcileCancelled: the reconcile context was cancelled
        """
        ctx = ctx or ReconcileContext.background()
        started = self._clock()
        delays = backoff.delays()
        attempt = 0

        with trace_span("realize_state.check", attributes={"intent_path": intent_path, "entity_type": entity_type}):
            while True:
                attempt += 1
                ctx.check()
                try:
                    self._poll_once(intent_path, entity_type, ctx)
                    metrics.realization_total.labels(entity_type=entity_type, result="realized").inc()
                    logger.debug(f"{entity_type} at {intent_path} realized after {attempt} attempt(s)")
                    return
                except RealizeStateError:
                    metrics.realization_total.labels(entity_type=entity_type, result="error").inc()
                    raise
                except (_NotRealized, BackendUnavailableError, NotFoundError) as e:
                    last_error: Exception = e

                delay = next(delays, None)
                elapsed = self._clock() - started
                if delay is None or (self.timeout is not None and elapsed + delay > self.timeout):
                    metrics.realization_total.labels(entity_type=entity_type, result="timeout").inc()
                    raise RealizationTimeoutError(
                        f"{entity_type} not realized after {attempt} attempt(s): {last_error}"
                    ) from last_error
                logger.debug(f"{entity_type} at {intent_path} not realized yet ({last_error}), retrying in {delay:.2f}s")
                try:
                    ctx.wait(delay)
                except ReconcileCancelled:
                    metrics.realization_total.labels(entity_type=entity_type, result="cancelled").inc()
                    raise

    def _poll_once(self, intent_path: str, entity_type: str, ctx: ReconcileContext) -> None:
        results: list[dict[str, Any]] = self.nsx_client.list_realized_entities(intent_path, ctx=ctx)
        for result in results:
            if result.get("entity_type") != entity_type:
                continue
            state = result.get("state")
            if state == REALIZED_STATE_REALIZED:
                return
            if state == REALIZED_STATE_ERROR:
                alarms = [a.get("message", "") for a in result.get("alarms") or [] if a.get("message")]
                detail = f": {'; '.join(alarms)}" if alarms else ""
                raise RealizeStateError(f"{entity_type} realized with state {REALIZED_STATE_ERROR}{detail}")
            raise _NotRealized(f"{entity_type} in state {state}")
        raise _NotRealized(f"{entity_type} not realized")
