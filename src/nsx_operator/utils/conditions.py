"""Utilities for managing Kubernetes conditions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import COND_READY


def format_time(moment: datetime | None = None) -> str:
    """Render a timestamp the way the API server stores metav1.Time."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_condition(
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    transition_time: str | None = None,
) -> dict[str, Any]:
    """Build a single condition entry."""
    return {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": transition_time or format_time(),
    }


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
    transition_time: str | None = None,
) -> list[dict[str, Any]]:
    """Update or add a condition to the conditions list.

    Args:
        conditions: List of existing conditions
        condition_type: Type of condition
        status: Status of condition ("True", "False", "Unknown")
        reason: Reason for the condition
        message: Human-readable message
        observed_generation: Generation when condition was observed
        transition_time: Timestamp to record when the status changes

    Returns:
        Updated list of conditions
    """
    cond = new_condition(condition_type, status, reason, message, transition_time)
    if observed_generation is not None:
        cond["observedGeneration"] = observed_generation
    return merge_conditions(conditions, [cond])


def merge_conditions(
    existing: list[dict[str, Any]],
    updates: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Merge updated conditions into an existing list, keyed by type.

    An entry of the same type is replaced in place, never appended, and keeps
    its lastTransitionTime when the status did not change.
    """
    merged = [dict(cond) for cond in existing]
    for update in updates:
        new_cond = dict(update)
        for idx, cond in enumerate(merged):
            if cond.get("type") == new_cond.get("type"):
                if cond.get("status") == new_cond.get("status") and cond.get("lastTransitionTime"):
                    new_cond["lastTransitionTime"] = cond["lastTransitionTime"]
                merged[idx] = new_cond
                break
        else:
            merged.append(new_cond)
    return merged


def conditions_equal(left: list[dict[str, Any]], right: list[dict[str, Any]]) -> bool:
    """Compare two condition lists ignoring order and lastTransitionTime."""

    def _key(conds: list[dict[str, Any]]) -> dict[str, tuple[Any, ...]]:
        return {
            c.get("type"): (c.get("status"), c.get("reason"), c.get("message"))
            for c in conds
        }

    return _key(left) == _key(right)


def get_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    for cond in conditions or []:
        if cond.get("type") == condition_type:
            return cond
    return None


def is_ready(obj: dict[str, Any]) -> bool:
    """Return True when the object's Ready condition is True."""
    cond = get_condition(obj.get("status", {}).get("conditions", []), COND_READY)
    return cond is not None and cond.get("status") == "True"


def ready_condition(status: bool, reason: str, message: str, transition_time: str | None = None) -> dict[str, Any]:
    """Build the Ready condition."""
    return new_condition(COND_READY, "True" if status else "False", reason, message, transition_time)
