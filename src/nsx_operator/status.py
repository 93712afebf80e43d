"""Records reconcile outcomes on CR status, as Events and as counters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Protocol

from . import metrics
from .logging import CONTROLLER_NAME, log_resource_event
from .utils.conditions import format_time, merge_conditions
from .utils.errors import NotFoundError, sanitize_exception
from .utils.events import (
    emit_delete_failed,
    emit_delete_succeeded,
    emit_update_failed,
    emit_update_succeeded,
)

if TYPE_CHECKING:
    from .config import OperatorConfig
    from .k8s import KubeClient

logger = logging.getLogger(__name__)

ApplyFn = Callable[[dict[str, Any], str, "Exception | None"], list[dict[str, Any]]]


class StatusUpdater(Protocol):
    def update_success(self, obj: dict[str, Any], apply_fn: ApplyFn) -> None:
        ...

    def update_fail(self, obj: dict[str, Any], err: Exception, msg: str, apply_fn: ApplyFn) -> None:
        ...

    def delete_success(self, key: str, obj: dict[str, Any] | None) -> None:
        ...

    def delete_fail(self, key: str, obj: dict[str, Any] | None, err: Exception) -> None:
        ...

    def increase_sync_total(self) -> None:
        ...

    def increase_update_total(self) -> None:
        ...

    def increase_delete_total(self) -> None:
        ...


class K8sStatusUpdater:
    """StatusUpdater backed by the Kubernetes Status subresource."""

    def __init__(
        self,
        k8s: KubeClient,
        config: OperatorConfig | None,
        kind: str,
        group: str,
        version: str,
        plural: str,
        res_type: str,
    ) -> None:
        self.k8s = k8s
        self.config = config
        self.kind = kind
        self.group = group
        self.version = version
        self.plural = plural
        self.res_type = res_type

    def _log(self, obj: dict[str, Any] | None, key: str, event: str, reason: str, message: str, level: int) -> None:
        meta = (obj or {}).get("metadata", {})
        namespace, _, name = key.partition("/")
        log_resource_event(
            logger,
            CONTROLLER_NAME,
            self.kind,
            meta.get("name", name),
            meta.get("namespace", namespace),
            meta.get("uid", ""),
            event,
            reason,
            message,
            level=level,
        )

    def _write_conditions(self, obj: dict[str, Any], apply_fn: ApplyFn, err: Exception | None) -> None:
        meta = obj.get("metadata", {})
        existing = obj.get("status", {}).get("conditions") or []
        conditions = merge_conditions(existing, apply_fn(obj, format_time(), err))
        try:
            self.k8s.patch_custom_status(
                self.group,
                self.version,
                self.plural,
                meta.get("namespace", ""),
                meta.get("name", ""),
                {"conditions": conditions},
            )
        except NotFoundError:
            logger.debug(f"{self.kind} {meta.get('namespace')}/{meta.get('name')} is gone, status not written")
            return
        obj.setdefault("status", {})["conditions"] = conditions

    def update_success(self, obj: dict[str, Any], apply_fn: ApplyFn) -> None:
        meta = obj.get("metadata", {})
        key = f"{meta.get('namespace')}/{meta.get('name')}"
        self._write_conditions(obj, apply_fn, None)
        emit_update_succeeded(obj, self.kind)
        self._log(obj, key, "update", "Success", f"{self.kind} CR has been successfully updated", logging.INFO)
        metrics.counter_inc(self.config, metrics.controller_update_success_total, self.res_type)

    def update_fail(self, obj: dict[str, Any], err: Exception, msg: str, apply_fn: ApplyFn) -> None:
        meta = obj.get("metadata", {})
        key = f"{meta.get('namespace')}/{meta.get('name')}"
        try:
            self._write_conditions(obj, apply_fn, err)
        except Exception as write_err:
            logger.error(f"Failed to update status of {self.kind} {key}: {sanitize_exception(write_err)}")
        message = f"{msg}: {sanitize_exception(err)}" if msg and msg != str(err) else sanitize_exception(err)
        emit_update_failed(obj, message)
        self._log(obj, key, "update", "Failed", message, logging.ERROR)
        metrics.counter_inc(self.config, metrics.controller_update_fail_total, self.res_type)

    def delete_success(self, key: str, obj: dict[str, Any] | None) -> None:
        if obj is not None:
            emit_delete_succeeded(obj, self.kind)
        self._log(obj, key, "delete", "Success", f"{self.kind} CR has been successfully deleted", logging.INFO)
        metrics.counter_inc(self.config, metrics.controller_delete_success_total, self.res_type)

    def delete_fail(self, key: str, obj: dict[str, Any] | None, err: Exception) -> None:
        message = sanitize_exception(err)
        if obj is not None:
            emit_delete_failed(obj, message)
        self._log(obj, key, "delete", "Failed", message, logging.ERROR)
        metrics.counter_inc(self.config, metrics.controller_delete_fail_total, self.res_type)

    def increase_sync_total(self) -> None:
        metrics.counter_inc(self.config, metrics.controller_sync_total, self.res_type)

    def increase_update_total(self) -> None:
        metrics.counter_inc(self.config, metrics.controller_update_total, self.res_type)

    def increase_delete_total(self) -> None:
        metrics.counter_inc(self.config, metrics.controller_delete_total, self.res_type)
