"""Operator exception taxonomy and error sanitization utilities."""

import re
from typing import Any

from ..constants import (
    REASON_ALLOCATION_CONFLICT,
    REASON_INVALID_ALLOCATION,
    REASON_POOL_EXHAUSTED,
)


class NSXOperatorError(Exception):
    """Base class for every error raised by the operator."""


class NotFoundError(NSXOperatorError):
    """CR or backend object is absent."""


class BackendUnavailableError(NSXOperatorError):
    """Transient failure talking to NSX (transport, 429, 5xx)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NSXApiError(NSXOperatorError):
    """NSX rejected a request (4xx other than 404 and 429)."""

    def __init__(self, message: str, status: int | None = None, error_code: int | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code


class NoEffectiveOption(NSXOperatorError):
    """No VPC coordinates could be resolved for a namespace."""


class AllocatorError(NSXOperatorError):
    """Allocation failure that will not resolve without user action."""

    reason = REASON_INVALID_ALLOCATION


class PoolExhaustedError(AllocatorError):
    reason = REASON_POOL_EXHAUSTED


class AllocationConflictError(AllocatorError):
    reason = REASON_ALLOCATION_CONFLICT


class InvalidAllocationRequest(AllocatorError):
    reason = REASON_INVALID_ALLOCATION


class RealizationError(NSXOperatorError):
    """The backend did not converge on the requested intent."""


class RealizeStateError(RealizationError):
    """The backend reported a permanent ERROR state."""


class RealizationTimeoutError(RealizationError):
    """The bounded wait for realization elapsed."""


class ReconcileCancelled(NSXOperatorError):
    """The reconcile context was cancelled or its deadline passed."""


class NetworkModeError(NSXOperatorError):
    """The network-mode verdict for a namespace cannot be determined."""


class GarbageCollectionError(NSXOperatorError):
    """Aggregate of per-object garbage collection failures."""

    def __init__(self, res_type: str, errors: list[Exception]) -> None:
        self.res_type = res_type
        self.errors = list(errors)
        joined = "; ".join(str(e) for e in self.errors)
        super().__init__(f"errors found in {res_type} garbage collection: {joined}")


class ConfigError(NSXOperatorError):
    """Invalid operator configuration."""


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"(authorization[:=\s]+)(basic|bearer)?\s*[^\s,;\)]+",
    r"(x-xsrf-token[:=\s]+)[^\s,;\)]+",
    r"(jsessionid[:=\s]+)[^\s,;\)]+",
    r"(https?://)[^:/@\s]+:[^@\s]+@",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "password",
    "secret",
    "credentials",
    "token",
    "thumbprint",
    "cert",
    "key_file",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, r"\1[REDACTED]", sanitized, flags=re.IGNORECASE)

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=\s]+([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
