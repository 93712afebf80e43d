"""Generic reconcile state machine shared by every resource controller."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

from . import metrics
from .events import split_key
from .logging import CONTROLLER_NAME, log_resource_event
from .tracing import trace_span
from .utils.context import ReconcileContext
from .utils.errors import AllocatorError, NotFoundError, ReconcileCancelled, sanitize_exception

if TYPE_CHECKING:
    from .config import OperatorConfig
    from .gate import NetworkModeGate
    from .k8s import KubeClient
    from .status import StatusUpdater

logger = logging.getLogger(__name__)

# Allocator failures need user action, retry them slowly.
ALLOCATOR_REQUEUE_AFTER_SECONDS = 300.0


class Result(enum.Enum):
    NORMAL = "Normal"
    REQUEUE = "Requeue"
    REQUEUE_AFTER = "RequeueAfter"


@dataclass(frozen=True)
class ReconcileResult:
    result: Result
    error: Exception | None = None
    requeue_after: float | None = None

    @classmethod
    def normal(cls) -> ReconcileResult:
        return cls(Result.NORMAL)

    @classmethod
    def requeue(cls, error: Exception | None = None) -> ReconcileResult:
        return cls(Result.REQUEUE, error)

    @classmethod
    def after(cls, delay: float, error: Exception | None = None) -> ReconcileResult:
        return cls(Result.REQUEUE_AFTER, error, delay)

    @property
    def requeue_requested(self) -> bool:
        return self.result is not Result.NORMAL


class ResourceService(Protocol):
    """Resource-specific NSX operations called by the reconciler."""

    def create_or_update(self, cr: dict[str, Any], ctx: ReconcileContext) -> bool:
        ...

    def delete(self, target: dict[str, Any] | str, ctx: ReconcileContext) -> None:
        ...

    def delete_by_namespaced_name(self, namespace: str, name: str, ctx: ReconcileContext) -> None:
        ...

    def list_tracked_ids(self) -> set[str]:
        ...


ConditionBuilder = Callable[[dict[str, Any], str, "Exception | None"], list[dict[str, Any]]]


class GenericReconciler:
    """Fetches a CR, drives the service, and records the outcome.

    Returns a :class:`ReconcileResult`; the controller turns it into queue
    operations.
    """

    def __init__(
        self,
        kind: str,
        group: str,
        version: str,
        plural: str,
        res_type: str,
        k8s: KubeClient,
        service: ResourceService,
        status_updater: StatusUpdater,
        gate: NetworkModeGate | None,
        config: OperatorConfig,
        ready_builder: ConditionBuilder,
        not_ready_builder: ConditionBuilder,
    ) -> None:
        self.kind = kind
        self.group = group
        self.version = version
        self.plural = plural
        self.res_type = res_type
        self.k8s = k8s
        self.service = service
        self.status_updater = status_updater
        self.gate = gate
        self.config = config
        self.ready_builder = ready_builder
        self.not_ready_builder = not_ready_builder

    def _log(self, level: int, namespace: str, name: str, uid: str, event: str, reason: str, message: str) -> None:
        log_resource_event(
            logger,
            CONTROLLER_NAME,
            self.kind,
            name,
            namespace,
            uid,
            event,
            reason,
            message,
            level=level,
        )

    def reconcile(self, key: str, ctx: ReconcileContext | None = None) -> ReconcileResult:
        """Reconcile one ``namespace/name`` key."""
        ctx = ctx or ReconcileContext.background()
        if self.gate is None:
            return self._reconcile(key, ctx)
        return self.gate.reconcile_with_filters(self.kind, key, lambda k: self._reconcile(k, ctx))

    def _reconcile(self, key: str, ctx: ReconcileContext) -> ReconcileResult:
        namespace, name = split_key(key)
        started = time.monotonic()
        self.status_updater.increase_sync_total()
        with trace_span("reconcile", kind=self.kind, attributes={"key": key}):
            try:
                try:
                    cr = self.k8s.get_custom(self.group, self.version, self.plural, namespace, name)
                except NotFoundError:
                    return self._handle_not_found(namespace, name, ctx)

                if cr.get("metadata", {}).get("deletionTimestamp"):
                    return self._handle_deletion(cr, ctx)
                return self._handle_update(cr, ctx)
            finally:
                metrics.reconcile_duration_seconds.labels(res_type=self.res_type).observe(
                    time.monotonic() - started
                )

    def _handle_not_found(self, namespace: str, name: str, ctx: ReconcileContext) -> ReconcileResult:
        key = f"{namespace}/{name}"
        self.status_updater.increase_delete_total()
        try:
            self.service.delete_by_namespaced_name(namespace, name, ctx)
        except ReconcileCancelled as e:
            return ReconcileResult.requeue(e)
        except Exception as e:
            self.status_updater.delete_fail(key, None, e)
            return ReconcileResult.requeue(e)
        self.status_updater.delete_success(key, None)
        return ReconcileResult.normal()

    def _handle_deletion(self, cr: dict[str, Any], ctx: ReconcileContext) -> ReconcileResult:
        meta = cr.get("metadata", {})
        key = f"{meta.get('namespace')}/{meta.get('name')}"
        self.status_updater.increase_delete_total()
        try:
            self.service.delete(cr, ctx)
        except ReconcileCancelled as e:
            return ReconcileResult.requeue(e)
        except Exception as e:
            self.status_updater.delete_fail(key, cr, e)
            return ReconcileResult.requeue(e)
        self.status_updater.delete_success(key, cr)
        return ReconcileResult.normal()

    def _handle_update(self, cr: dict[str, Any], ctx: ReconcileContext) -> ReconcileResult:
        meta = cr.get("metadata", {})
        self.status_updater.increase_update_total()
        try:
            updated = self.service.create_or_update(cr, ctx)
        except ReconcileCancelled as e:
            self._log(logging.WARNING, meta.get("namespace", ""), meta.get("name", ""), meta.get("uid", ""),
                      "reconcile", "Cancelled", str(e))
            return ReconcileResult.requeue(e)
        except AllocatorError as e:
            self.status_updater.update_fail(cr, e, sanitize_exception(e), self.not_ready_builder)
            return ReconcileResult.after(ALLOCATOR_REQUEUE_AFTER_SECONDS, e)
        except Exception as e:
            self.status_updater.update_fail(cr, e, sanitize_exception(e), self.not_ready_builder)
            return ReconcileResult.requeue(e)

        if updated:
            try:
                self.status_updater.update_success(cr, self.ready_builder)
            except Exception as e:
                self._log(logging.ERROR, meta.get("namespace", ""), meta.get("name", ""), meta.get("uid", ""),
                          "update", "StatusWriteFailed", sanitize_exception(e))
                return ReconcileResult.requeue(e)
        else:
            self._log(logging.DEBUG, meta.get("namespace", ""), meta.get("name", ""), meta.get("uid", ""),
                      "reconcile", "NoChange", "NSX object already up to date, status untouched")
        return ReconcileResult.normal()
