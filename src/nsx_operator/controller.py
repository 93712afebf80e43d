"""Worker pool draining a work queue into a reconciler."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from .reconciler import ReconcileResult, Result
from .utils.context import ReconcileContext, with_correlation_id
from .utils.errors import sanitize_exception
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)


class Reconciler(Protocol):
    def reconcile(self, key: str, ctx: ReconcileContext | None = None) -> ReconcileResult:
        ...


class Controller:
    """Runs ``workers`` threads, each reconciling one key at a time."""

    def __init__(
        self,
        name: str,
        reconciler: Reconciler,
        queue: RateLimitingQueue | None = None,
        workers: int = 1,
        reconcile_timeout: float | None = None,
    ) -> None:
        self.name = name
        self.reconciler = reconciler
        self.queue = queue if queue is not None else RateLimitingQueue(name=name)
        self.workers = workers
        self.reconcile_timeout = reconcile_timeout
        self._threads: list[threading.Thread] = []
        self._root_ctx = ReconcileContext()

    def enqueue(self, key: str) -> None:
        self.queue.add(key)

    def start(self) -> None:
        for i in range(self.workers):
            thread = threading.Thread(target=self._worker, name=f"{self.name}-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started controller {self.name} with {self.workers} workers")

    def stop(self, timeout: float | None = None) -> None:
        """Shut the queue down and cancel in-flight reconciles."""
        self.queue.shut_down()
        self._root_ctx.cancel()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info(f"Stopped controller {self.name}")

    def _worker(self) -> None:
        while self.process_next_item():
            pass

    def process_next_item(self, timeout: float | None = None) -> bool:
        """Process one key. Returns False once the queue is shut down."""
        key, shutdown = self.queue.get(timeout)
        if shutdown:
            return False
        if key is None:
            return True
        try:
            self.reconcile_key(str(key))
        finally:
            self.queue.done(key)
        return True

    def reconcile_key(self, key: str) -> ReconcileResult:
        if self.reconcile_timeout is not None:
            ctx = self._root_ctx.with_timeout(self.reconcile_timeout)
        else:
            ctx = ReconcileContext(parent=self._root_ctx)
        with with_correlation_id(key):
            try:
                result = self.reconciler.reconcile(key, ctx)
            except Exception as e:
                logger.exception(f"Unhandled error reconciling {self.name} {key}")
                result = ReconcileResult.requeue(e)

            if result.error is not None:
                logger.error(f"Reconcile {self.name} {key} failed: {sanitize_exception(result.error)}")

            if result.result is Result.NORMAL:
                self.queue.forget(key)
            elif result.result is Result.REQUEUE_AFTER:
                self.queue.forget(key)
                self.queue.add_after(key, result.requeue_after or 0.0)
            else:
                self.queue.add_rate_limited(key)
        return result
