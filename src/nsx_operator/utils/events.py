"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_FAIL_DELETE,
    EVENT_REASON_FAIL_UPDATE,
    EVENT_REASON_SUCCESSFUL_DELETE,
    EVENT_REASON_SUCCESSFUL_UPDATE,
)

logger = logging.getLogger(__name__)


def emit_event(
    obj: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Events are best-effort breadcrumbs; failing to post one never fails the
    caller.

    Args:
        obj: Resource body (must carry apiVersion, kind and metadata)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    try:
        kopf.event(
            obj,
            reason=reason,
            message=message,
            type=type_,
        )
    except Exception as e:
        logger.warning(f"Failed to emit event {reason}: {e}")


def emit_update_succeeded(obj: dict[str, Any], resource_type: str) -> None:
    """Emit successful create/update event."""
    emit_event(obj, EVENT_REASON_SUCCESSFUL_UPDATE, f"{resource_type} CR has been successfully updated")


def emit_update_failed(obj: dict[str, Any], message: str) -> None:
    """Emit failed create/update event."""
    emit_event(obj, EVENT_REASON_FAIL_UPDATE, message, type_="Warning")


def emit_delete_succeeded(obj: dict[str, Any], resource_type: str) -> None:
    """Emit successful delete event."""
    emit_event(obj, EVENT_REASON_SUCCESSFUL_DELETE, f"{resource_type} CR has been successfully deleted")


def emit_delete_failed(obj: dict[str, Any], message: str) -> None:
    """Emit failed delete event."""
    emit_event(obj, EVENT_REASON_FAIL_DELETE, message, type_="Warning")
