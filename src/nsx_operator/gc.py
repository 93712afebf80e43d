"""Periodic garbage collection of NSX objects whose CR no longer exists."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from . import metrics
from .reconciler import ResourceService
from .tracing import trace_span
from .utils.context import ReconcileContext
from .utils.errors import GarbageCollectionError, ReconcileCancelled, sanitize_exception

logger = logging.getLogger(__name__)


def collect_garbage(
    res_type: str,
    service: ResourceService,
    list_live_uids: Callable[[], set[str]],
    ctx: ReconcileContext | None = None,
) -> set[str]:
    """Delete every tracked NSX object whose CR UID is not live.

    The store is read before the live list, so an object created between the
    two reads has no store entry yet and cannot be collected.

    Returns:
        The UIDs that were deleted.

    Raises:
        GarbageCollectionError: aggregate of the per-orphan failures
    """
    ctx = ctx or ReconcileContext.background()
    logger.info(f"{res_type} garbage collector started")
    tracked = service.list_tracked_ids()
    if not tracked:
        return set()

    live = list_live_uids()
    orphans = tracked - live
    logger.debug(f"{res_type} garbage collector: tracked={len(tracked)} live={len(live)} orphans={len(orphans)}")

    deleted: set[str] = set()
    errors: list[Exception] = []
    for uid in sorted(orphans):
        ctx.check()
        logger.info(f"GC collected NSX {res_type} for CR UID {uid}")
        try:
            service.delete(uid, ctx)
        except ReconcileCancelled:
            raise
        except Exception as e:
            logger.error(f"Failed to delete NSX {res_type} for CR UID {uid}: {sanitize_exception(e)}")
            metrics.gc_orphans_total.labels(res_type=res_type, result="failed").inc()
            errors.append(e)
            continue
        metrics.gc_orphans_total.labels(res_type=res_type, result="deleted").inc()
        deleted.add(uid)

    if errors:
        raise GarbageCollectionError(res_type, errors)
    return deleted


class ScheduledTask:
    """Runs ``fn`` every ``interval`` seconds on a background thread.

    ``run_once`` is single-flight: a call made while another run is in
    progress returns immediately without running. Errors are logged and never
    stop the loop.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        fn: Callable[[ReconcileContext], Any],
    ) -> None:
        self.name = name
        self.interval = interval
        self.fn = fn
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._ctx = ReconcileContext()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._ctx = ReconcileContext()
        self._thread = threading.Thread(target=self._loop, name=f"task-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Started scheduled task {self.name} every {self.interval}s")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self._ctx.cancel()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"Stopped scheduled task {self.name}")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Run the task now. Returns False when skipped because a run is in flight."""
        if not self._running.acquire(blocking=False):
            logger.debug(f"Scheduled task {self.name} already running, skipped")
            return False
        try:
            with trace_span(f"task.{self.name}"):
                self.fn(self._ctx)
        except ReconcileCancelled:
            logger.info(f"Scheduled task {self.name} cancelled")
        except Exception as e:
            logger.error(f"Scheduled task {self.name} failed: {sanitize_exception(e)}")
        finally:
            self._running.release()
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()
