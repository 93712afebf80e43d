"""Network and Namespace watches driving the network-mode gate."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import KIND_NETWORK, NETOPERATOR_GROUP_VERSION
from ..events import EventHandler, LastSeen
from ..runtime import get_runtime


def dispatch(handler: EventHandler, last_seen: LastSeen, event: dict[str, Any]) -> None:
    handler.handle(last_seen.convert(event.get("type"), event.get("object") or {}))


@kopf.on.event(NETOPERATOR_GROUP_VERSION, KIND_NETWORK)
def handle_network_event(event: dict[str, Any], **_: Any) -> None:
    runtime = get_runtime()
    dispatch(runtime.gate, runtime.network_events, event)


@kopf.on.event("v1", "namespaces")
def handle_namespace_event(event: dict[str, Any], **_: Any) -> None:
    runtime = get_runtime()
    body = event.get("object") or {}
    runtime.gate.handle_namespace(runtime.namespace_events.convert(event.get("type"), body))
