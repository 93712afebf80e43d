"""In-memory indexed store correlating CRs with NSX objects."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Iterable

from .utils.errors import NotFoundError

logger = logging.getLogger(__name__)

KeyFunc = Callable[[dict[str, Any]], str]
IndexFunc = Callable[[dict[str, Any]], list[str]]


def key_by_id(obj: dict[str, Any]) -> str:
    """Key NSX objects by their backend id."""
    return obj["id"]


def filter_tag(tags: list[dict[str, Any]] | None, scope: str) -> list[str]:
    """Return the values of every tag with the given scope."""
    return [tag["tag"] for tag in tags or [] if tag.get("scope") == scope and tag.get("tag") is not None]


def index_by_tag(scope: str) -> IndexFunc:
    """Build an index function over a tag scope."""

    def _index(obj: dict[str, Any]) -> list[str]:
        return filter_tag(obj.get("tags"), scope)

    return _index


class ResourceStore:
    """Thread-safe indexer of NSX objects.

    Objects are plain dicts as returned by the NSX Policy API. Callers always
    receive deep copies, and every mutation runs under a single short-held
    lock, so a reader never observes a partially updated entry.
    """

    def __init__(self, key_func: KeyFunc = key_by_id, indexers: dict[str, IndexFunc] | None = None) -> None:
        self._key_func = key_func
        self._indexers = dict(indexers or {})
        self._lock = threading.RLock()
        self._items: dict[str, dict[str, Any]] = {}
        self._indices: dict[str, dict[str, set[str]]] = {name: {} for name in self._indexers}

    def apply(self, obj: dict[str, Any]) -> None:
        """Add or update an object, or remove it when it is marked for delete."""
        if obj.get("marked_for_delete"):
            self.delete(obj)
            logger.debug(f"Deleted {self._key_func(obj)} from store")
        else:
            self.add(obj)
            logger.debug(f"Added {self._key_func(obj)} to store")

    def add(self, obj: dict[str, Any]) -> None:
        key = self._key_func(obj)
        stored = copy.deepcopy(obj)
        with self._lock:
            self._remove_locked(key)
            self._items[key] = stored
            for name, index_func in self._indexers.items():
                for value in index_func(stored):
                    self._indices[name].setdefault(value, set()).add(key)

    def delete(self, obj: dict[str, Any]) -> None:
        self.delete_by_key(self._key_func(obj))

    def delete_by_key(self, key: str) -> None:
        with self._lock:
            self._remove_locked(key)

    def _remove_locked(self, key: str) -> None:
        old = self._items.pop(key, None)
        if old is None:
            return
        for name, index_func in self._indexers.items():
            index = self._indices[name]
            for value in index_func(old):
                keys = index.get(value)
                if keys is None:
                    continue
                keys.discard(key)
                if not keys:
                    del index[value]

    def get_by_key(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            obj = self._items.get(key)
            return copy.deepcopy(obj) if obj is not None else None

    def get_by_index(self, index: str, value: str) -> list[dict[str, Any]]:
        with self._lock:
            if index not in self._indices:
                raise KeyError(f"index {index} does not exist")
            keys = sorted(self._indices[index].get(value, ()))
            return [copy.deepcopy(self._items[key]) for key in keys]

    def list_index_values(self, index: str) -> set[str]:
        with self._lock:
            if index not in self._indices:
                raise KeyError(f"index {index} does not exist")
            return set(self._indices[index])

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(obj) for obj in self._items.values()]

    def replace(self, objects: Iterable[dict[str, Any]]) -> int:
        """Atomically replace the whole content of the store."""
        objects = [copy.deepcopy(obj) for obj in objects]
        with self._lock:
            self._items.clear()
            self._indices = {name: {} for name in self._indexers}
            for obj in objects:
                self.add(obj)
            return len(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class TrackedResourceStore(ResourceStore):
    """Store whose primary lookup is the CR UID carried by the correlation tag."""

    def __init__(
        self,
        uid_scope: str,
        key_func: KeyFunc = key_by_id,
        indexers: dict[str, IndexFunc] | None = None,
    ) -> None:
        all_indexers = {uid_scope: index_by_tag(uid_scope)}
        all_indexers.update(indexers or {})
        super().__init__(key_func, all_indexers)
        self.uid_scope = uid_scope
        self.rehydrated = threading.Event()

    def track(self, uid: str, backend_id: str, obj: dict[str, Any] | None = None) -> None:
        """Record that the CR ``uid`` owns the backend object ``backend_id``."""
        stored = copy.deepcopy(obj) if obj is not None else {}
        stored["id"] = backend_id
        tags = [t for t in stored.get("tags") or [] if t.get("scope") != self.uid_scope]
        tags.append({"scope": self.uid_scope, "tag": uid})
        stored["tags"] = tags
        with self._lock:
            # A UID owns at most one backend object.
            for stale in self._indices[self.uid_scope].get(uid, set()) - {backend_id}:
                self._remove_locked(stale)
            self.add(stored)

    def get_by_uid(self, uid: str) -> dict[str, Any] | None:
        matches = self.get_by_index(self.uid_scope, uid)
        return matches[0] if matches else None

    def lookup(self, uid: str) -> str:
        """Return the backend id tracked for ``uid``.

        Raises:
            NotFoundError: if nothing is tracked for the UID
        """
        obj = self.get_by_uid(uid)
        if obj is None:
            raise NotFoundError(f"no backend object tracked for {uid}")
        return obj["id"]

    def untrack(self, uid: str) -> None:
        with self._lock:
            for key in list(self._indices[self.uid_scope].get(uid, ())):
                self._remove_locked(key)

    def list_tracked_ids(self) -> set[str]:
        """CR UIDs of every tracked backend object."""
        return self.list_index_values(self.uid_scope)

    def rehydrate(self, objects: Iterable[dict[str, Any]]) -> int:
        """Rebuild the store from backend objects listed by correlation tag."""
        count = self.replace(obj for obj in objects if filter_tag(obj.get("tags"), self.uid_scope))
        self.rehydrated.set()
        return count
