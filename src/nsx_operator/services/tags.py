"""Correlation tags and IDs for NSX objects."""

from __future__ import annotations

import hashlib
from typing import Any

from ..constants import (
    TAG_SCOPE_CLUSTER,
    TAG_SCOPE_NAMESPACE,
    TAG_SCOPE_NAMESPACE_UID,
    TAG_SCOPE_VERSION,
    TAG_VERSION,
)

MAX_ID_LENGTH = 255
MAX_TAG_LENGTH = 256
HASH_LENGTH = 8


def _truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    digest = hashlib.sha1(value.encode()).hexdigest()[:HASH_LENGTH]
    return f"{value[: limit - HASH_LENGTH - 1]}_{digest}"


def build_basic_tags(
    cluster: str,
    obj: dict[str, Any],
    namespace_uid: str | None,
    uid_scope: str,
    name_scope: str,
) -> list[dict[str, str]]:
    """Tags every NSX object created for a namespaced CR carries."""
    meta = obj.get("metadata", {})
    tags = [
        {"scope": TAG_SCOPE_CLUSTER, "tag": cluster},
        {"scope": TAG_SCOPE_VERSION, "tag": TAG_VERSION},
        {"scope": TAG_SCOPE_NAMESPACE, "tag": meta.get("namespace", "")},
    ]
    if namespace_uid:
        tags.append({"scope": TAG_SCOPE_NAMESPACE_UID, "tag": namespace_uid})
    tags.append({"scope": name_scope, "tag": _truncate(meta.get("name", ""), MAX_TAG_LENGTH)})
    tags.append({"scope": uid_scope, "tag": meta.get("uid", "")})
    return tags


def build_id(obj: dict[str, Any]) -> str:
    """``<name>_<uid>``, shortened with a hash when over the NSX id limit."""
    meta = obj.get("metadata", {})
    return _truncate(f"{meta.get('name', '')}_{meta.get('uid', '')}", MAX_ID_LENGTH)


def tag_value(tags: list[dict[str, Any]] | None, scope: str) -> str | None:
    for tag in tags or []:
        if tag.get("scope") == scope:
            return tag.get("tag")
    return None


def tags_equal(left: list[dict[str, Any]] | None, right: list[dict[str, Any]] | None) -> bool:
    """Compare tag lists ignoring order."""

    def _key(tags: list[dict[str, Any]] | None) -> list[tuple[str, str]]:
        return sorted((t.get("scope", ""), t.get("tag", "")) for t in tags or [])

    return _key(left) == _key(right)
