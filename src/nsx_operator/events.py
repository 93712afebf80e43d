"""Watch events as tagged variants, dispatched through a single handler."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol, Union


@dataclass(frozen=True)
class CreateEvent:
    obj: dict[str, Any]


@dataclass(frozen=True)
class UpdateEvent:
    old: dict[str, Any]
    new: dict[str, Any]


@dataclass(frozen=True)
class DeleteEvent:
    obj: dict[str, Any]


@dataclass(frozen=True)
class GenericEvent:
    obj: dict[str, Any]
    meta: dict[str, Any] = field(default_factory=dict)


Event = Union[CreateEvent, UpdateEvent, DeleteEvent, GenericEvent]


class EventHandler(Protocol):
    def handle(self, event: Event) -> None:
        ...


def event_object(event: Event) -> dict[str, Any]:
    """The current object carried by any variant."""
    if isinstance(event, UpdateEvent):
        return event.new
    return event.obj


def event_from_kopf(event_type: str | None, body: dict[str, Any], old: dict[str, Any] | None = None) -> Event:
    """Convert a kopf watch payload into a variant.

    kopf reports ``ADDED``, ``MODIFIED``, ``DELETED`` and ``None`` for the
    initial listing.
    """
    body = dict(body)
    if event_type == "ADDED":
        return CreateEvent(body)
    if event_type == "MODIFIED":
        return UpdateEvent(old=dict(old or {}), new=body)
    if event_type == "DELETED":
        return DeleteEvent(body)
    return GenericEvent(body, meta={"type": event_type})


def namespaced_key(obj: dict[str, Any]) -> str:
    meta = obj.get("metadata", {})
    namespace = meta.get("namespace")
    return f"{namespace}/{meta.get('name')}" if namespace else meta.get("name", "")


def split_key(key: str) -> tuple[str, str]:
    """Split ``namespace/name``; cluster-scoped keys yield an empty namespace."""
    if "/" in key:
        namespace, name = key.split("/", 1)
        return namespace, name
    return "", key


class LastSeen:
    """Remembers the last object per key so that watch events carry the old object.

    kopf watch events only hold the current object. The initial listing
    (event type ``None``) and re-listings after a reconnect are turned into
    creates or updates depending on whether the key was seen before.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[str, dict[str, Any]] = {}

    def convert(self, event_type: str | None, body: dict[str, Any]) -> Event:
        key = namespaced_key(body)
        with self._lock:
            old = self._objects.get(key)
            if event_type == "DELETED":
                self._objects.pop(key, None)
            else:
                self._objects[key] = copy.deepcopy(dict(body))

        if event_type == "DELETED":
            return event_from_kopf(event_type, body)
        if old is None:
            return event_from_kopf("ADDED", body)
        return event_from_kopf("MODIFIED", body, old)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
