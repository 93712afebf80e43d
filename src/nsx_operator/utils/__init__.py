"""Utility functions for the NSX Operator."""

from .cache import TTLCache
from .conditions import (
    format_time,
    get_condition,
    is_ready,
    merge_conditions,
    ready_condition,
    update_condition,
)
from .context import (
    ReconcileContext,
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
)
from .errors import sanitize_dict, sanitize_error_message, sanitize_exception
from .events import emit_event
from .rate_limit import RateLimiter

__all__ = [
    "TTLCache",
    "format_time",
    "get_condition",
    "is_ready",
    "merge_conditions",
    "ready_condition",
    "update_condition",
    "ReconcileContext",
    "get_context_dict",
    "get_correlation_id",
    "set_correlation_id",
    "with_correlation_id",
    "sanitize_dict",
    "sanitize_error_message",
    "sanitize_exception",
    "emit_event",
    "RateLimiter",
]
