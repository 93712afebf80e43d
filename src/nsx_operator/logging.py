"""JSON log output carrying the reconcile correlation ID."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .utils.context import get_correlation_id
from .utils.errors import sanitize_dict, sanitize_error_message

CONTROLLER_NAME = "nsx-operator"
LOG_LEVEL_ENV = "LOG_LEVEL"


class CorrelationIdFilter(logging.Filter):
    """Attach the correlation ID of the current reconcile to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": sanitize_error_message(record.getMessage()),
        }
        corr_id = getattr(record, "correlation_id", None)
        if corr_id:
            entry["correlation_id"] = corr_id
        resource = getattr(record, "resource", None)
        if resource:
            entry.update(sanitize_dict(resource))
        if record.exc_info:
            entry["exc"] = sanitize_error_message(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


def setup_structured_logging(level: int | None = None) -> None:
    """Route root logging to stdout as one JSON object per line.

    The level defaults to ``LOG_LEVEL`` from the environment, then INFO.
    """
    if level is None:
        level = logging.getLevelName(os.getenv(LOG_LEVEL_ENV, "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log an event about one CR with its identity as structured fields."""
    resource = {
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
    }
    resource.update(kwargs)
    logger.log(level, f"{resource_kind} {namespace}/{resource_name}: {message}", extra={"resource": resource})
