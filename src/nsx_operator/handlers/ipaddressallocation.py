"""Watch handler feeding IPAddressAllocation keys into the work queue."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_IP_ADDRESS_ALLOCATION
from ..events import namespaced_key
from ..runtime import get_runtime

logger = logging.getLogger(__name__)


@kopf.on.event(API_GROUP_VERSION, KIND_IP_ADDRESS_ALLOCATION)
def handle_ipaddressallocation_event(event: dict[str, Any], **_: Any) -> None:
    """Enqueue the key; the reconciler reads the current object itself."""
    body = event.get("object") or {}
    key = namespaced_key(body)
    if not key:
        return
    logger.debug(f"Enqueue {KIND_IP_ADDRESS_ALLOCATION} {key} on {event.get('type') or 'LIST'}")
    get_runtime().ipaddressallocation_controller.enqueue(key)
