"""IPAddressAllocation service: VPC IP address allocations on NSX."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..allocator import AllocationRecord, IPAllocator
from ..constants import (
    API_GROUP,
    API_VERSION,
    INDEX_NAMESPACED_NAME,
    NSX_RESOURCE_TYPE_IP_ADDRESS_ALLOCATION,
    POOL_EXTERNAL,
    PLURAL_IP_ADDRESS_ALLOCATIONS,
    POOL_PRIVATE,
    REALIZED_ENTITY_IP_ADDRESS_ALLOCATION,
    REASON_IP_ADDRESS_ALLOCATION_NOT_READY,
    REASON_IP_ADDRESS_ALLOCATION_READY,
    REASON_REALIZATION_FAILED,
    REASON_REALIZATION_TIMEOUT,
    TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_NAME,
    TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID,
    TAG_SCOPE_NAMESPACE,
    VISIBILITY_EXTERNAL,
    VISIBILITY_PRIVATE,
    VISIBILITY_PRIVATE_TGW,
)
from ..realizestate import Backoff, RealizeStateService
from ..store import TrackedResourceStore, filter_tag
from ..utils.conditions import is_ready, ready_condition
from ..utils.context import ReconcileContext
from ..utils.errors import (
    AllocationConflictError,
    AllocatorError,
    InvalidAllocationRequest,
    NoEffectiveOption,
    NotFoundError,
    RealizationTimeoutError,
    RealizeStateError,
    sanitize_exception,
)
from .tags import build_basic_tags, build_id, tag_value, tags_equal

if TYPE_CHECKING:
    from ..config import OperatorConfig
    from ..k8s import KubeClient
    from .nsx.base import NSXProvider

logger = logging.getLogger(__name__)

COMPARED_FIELDS = ("display_name", "ip_address_block_visibility", "allocation_ips", "allocation_size")


def normalize_visibility(value: str | None) -> str:
    """Map the CR visibility (External, Private, PrivateTGW) to the NSX value."""
    if not value:
        return VISIBILITY_PRIVATE
    upper = value.upper()
    if upper in ("PRIVATETGW", VISIBILITY_PRIVATE_TGW):
        return VISIBILITY_PRIVATE_TGW
    return upper


def pool_for_visibility(visibility: str) -> str:
    if visibility == VISIBILITY_EXTERNAL:
        return POOL_EXTERNAL
    return POOL_PRIVATE


def index_by_namespaced_name(obj: dict[str, Any]) -> list[str]:
    tags = obj.get("tags")
    namespace = tag_value(tags, TAG_SCOPE_NAMESPACE)
    names = filter_tag(tags, TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_NAME)
    if namespace is None:
        return []
    return [f"{namespace}/{name}" for name in names]


def build_ready_conditions(obj: dict[str, Any], transition_time: str, err: Exception | None) -> list[dict[str, Any]]:
    return [
        ready_condition(
            True,
            REASON_IP_ADDRESS_ALLOCATION_READY,
            "NSX IPAddressAllocation has been successfully created/updated",
            transition_time,
        )
    ]


def build_not_ready_conditions(
    obj: dict[str, Any], transition_time: str, err: Exception | None
) -> list[dict[str, Any]]:
    if isinstance(err, AllocatorError):
        reason = err.reason
    elif isinstance(err, RealizationTimeoutError):
        reason = REASON_REALIZATION_TIMEOUT
    elif isinstance(err, RealizeStateError):
        reason = REASON_REALIZATION_FAILED
    else:
        reason = REASON_IP_ADDRESS_ALLOCATION_NOT_READY
    detail = sanitize_exception(err) if err is not None else "unknown"
    return [
        ready_condition(
            False,
            reason,
            f"error occurred while processing the IPAddressAllocation CR. Error: {detail}",
            transition_time,
        )
    ]


def allocation_to_comparable(obj: dict[str, Any] | None) -> dict[str, Any] | None:
    if obj is None:
        return None
    return {f: obj.get(f) for f in COMPARED_FIELDS}


class IPAddressAllocationService:
    """Creates, updates and deletes VpcIpAddressAllocations for IPAddressAllocation CRs."""

    def __init__(
        self,
        nsx_client: NSXProvider,
        config: OperatorConfig,
        allocator: IPAllocator,
        k8s: KubeClient | None = None,
        realizer: RealizeStateService | None = None,
    ) -> None:
        self.nsx_client = nsx_client
        self.config = config
        self.allocator = allocator
        self.k8s = k8s
        self.realizer = (
            realizer if realizer is not None else RealizeStateService(nsx_client, timeout=config.realize_timeout_seconds)
        )
        self.backoff = Backoff.from_config(config)
        self.store = TrackedResourceStore(
            TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID,
            indexers={INDEX_NAMESPACED_NAME: index_by_namespaced_name},
        )
        # UIDs patched on NSX whose realization has not been confirmed yet.
        self._pending: set[str] = set()

    def initialize(self, ctx: ReconcileContext | None = None) -> int:
        """Rehydrate the store and the allocator from NSX after a restart."""
        objects = self.nsx_client.search_by_tag(
            NSX_RESOURCE_TYPE_IP_ADDRESS_ALLOCATION,
            TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID,
            self.config.cluster,
            ctx=ctx,
        )
        count = self.store.rehydrate(objects)
        for obj in self.store.list():
            uid = tag_value(obj.get("tags"), TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID)
            cidr = obj.get("allocation_ips")
            pool = pool_for_visibility(obj.get("ip_address_block_visibility", VISIBILITY_PRIVATE))
            if not uid or not cidr or not self.allocator.has_pool(pool):
                continue
            try:
                self.allocator.restore(pool, uid, cidr)
            except (ValueError, AllocationConflictError) as e:
                logger.warning(f"Cannot restore allocation {cidr} of {uid}: {e}")
        logger.info(f"Initialized store, resourceType={NSX_RESOURCE_TYPE_IP_ADDRESS_ALLOCATION} count={count}")
        return count

    def ready(self) -> bool:
        return self.store.rehydrated.is_set()

    def _vpc_path(self, obj: dict[str, Any] | None = None) -> str:
        if obj is not None and obj.get("parent_path"):
            return obj["parent_path"]
        if not self.config.vpc:
            raise NoEffectiveOption("no valid org and project for ipaddressallocation")
        return self.config.vpc_path

    def _namespace_uid(self, namespace: str) -> str | None:
        if self.k8s is None:
            return None
        try:
            return self.k8s.get_namespace(namespace).get("metadata", {}).get("uid")
        except NotFoundError:
            return None

    def _allocate(self, cr: dict[str, Any], visibility: str) -> tuple[str | None, int | None]:
        """Return ``(allocation_ips, allocation_size)`` for the NSX object."""
        uid = cr["metadata"]["uid"]
        spec = cr.get("spec") or {}
        allocation_ips = spec.get("allocationIPs") or None
        allocation_size = spec.get("allocationSize") or None
        if allocation_ips and allocation_size:
            raise InvalidAllocationRequest("only one of allocationIPs and allocationSize can be set")
        if not allocation_ips and not allocation_size:
            raise InvalidAllocationRequest("one of allocationIPs and allocationSize must be set")

        pool = pool_for_visibility(visibility)
        if not self.allocator.has_pool(pool):
            # NSX allocates from the project IP blocks.
            return allocation_ips, None if allocation_ips else int(allocation_size)
        if allocation_ips:
            return self.allocator.allocate(pool, uid, cidr=allocation_ips), None
        return self.allocator.allocate(pool, uid, size=int(allocation_size)), None

    def build(self, cr: dict[str, Any], allocation_ips: str | None, allocation_size: int | None) -> dict[str, Any]:
        meta = cr["metadata"]
        visibility = normalize_visibility((cr.get("spec") or {}).get("ipAddressBlockVisibility"))
        body: dict[str, Any] = {
            "resource_type": NSX_RESOURCE_TYPE_IP_ADDRESS_ALLOCATION,
            "id": build_id(cr),
            "display_name": meta["name"],
            "tags": build_basic_tags(
                self.config.cluster,
                cr,
                self._namespace_uid(meta.get("namespace", "")),
                TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID,
                TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_NAME,
            ),
            "ip_address_block_visibility": visibility,
        }
        if allocation_ips:
            body["allocation_ips"] = allocation_ips
        if allocation_size:
            body["allocation_size"] = allocation_size
        return body

    def create_or_update(self, cr: dict[str, Any], ctx: ReconcileContext) -> bool:
        """Converge NSX on the CR. Returns whether anything changed."""
        meta = cr["metadata"]
        uid = meta["uid"]
        visibility = normalize_visibility((cr.get("spec") or {}).get("ipAddressBlockVisibility"))

        pool = pool_for_visibility(visibility)
        first_allocation = self.allocator.has_pool(pool) and self.allocator.get(pool, uid) is None
        allocation_ips, allocation_size = self._allocate(cr, visibility)
        existing = self.store.get_by_uid(uid)
        try:
            desired = self.build(cr, allocation_ips, allocation_size)
            if existing is not None and allocation_size and existing.get("allocation_ips"):
                # NSX chose the range; keep comparing against what it chose.
                desired_cmp = dict(allocation_to_comparable(desired) or {})
                desired_cmp["allocation_ips"] = existing.get("allocation_ips")
            else:
                desired_cmp = allocation_to_comparable(desired)

            changed = (
                existing is None
                or uid in self._pending
                or allocation_to_comparable(existing) != desired_cmp
                or not tags_equal(existing.get("tags"), desired["tags"])
            )

            vpc_path = self._vpc_path(existing)
            if changed:
                ctx.check()
                self.nsx_client.patch_ip_address_allocation(vpc_path, desired["id"], desired, ctx=ctx)
        except Exception:
            # Nothing reached NSX for this CR, so nothing would ever release the range.
            if first_allocation and existing is None:
                self.allocator.release(pool, uid, allocation_ips)
            raise

        if changed:
            intent_path = f"{vpc_path}/ip-address-allocations/{desired['id']}"
            # Track before waiting so a CR deleted mid-realization is still collected.
            self.store.track(uid, desired["id"], dict(desired, parent_path=vpc_path, path=intent_path))
            self._pending.add(uid)
            self.realizer.check_realize_state(
                self.backoff, intent_path, REALIZED_ENTITY_IP_ADDRESS_ALLOCATION, ctx
            )
            realized = self.nsx_client.get_ip_address_allocation(vpc_path, desired["id"], ctx=ctx)
            if not realized.get("allocation_ips"):
                raise NotFoundError(f"ipaddressallocation {uid} didn't realize available cidr")
            tracked = dict(desired)
            tracked.update(
                {
                    "allocation_ips": allocation_ips or realized["allocation_ips"],
                    "path": realized.get("path", intent_path),
                    "parent_path": realized.get("parent_path", vpc_path),
                }
            )
            self.store.track(uid, desired["id"], tracked)
            self._pending.discard(uid)
            logger.debug(f"Successfully created or updated NSX ipaddressallocation {desired['id']}")
            cidr = realized["allocation_ips"]
        else:
            cidr = existing.get("allocation_ips")  # type: ignore[union-attr]

        status_changed = self._write_status(cr, cidr)
        return changed or status_changed or not is_ready(cr)

    def _write_status(self, cr: dict[str, Any], cidr: str | None) -> bool:
        if self.k8s is None or not cidr:
            return False
        status = cr.get("status") or {}
        if status.get("allocationIPs") == cidr:
            return False
        meta = cr["metadata"]
        self.k8s.patch_custom_status(
            API_GROUP,
            API_VERSION,
            PLURAL_IP_ADDRESS_ALLOCATIONS,
            meta.get("namespace", ""),
            meta["name"],
            {"allocationIPs": cidr},
        )
        cr.setdefault("status", {})["allocationIPs"] = cidr
        return True

    def delete(self, target: dict[str, Any] | str, ctx: ReconcileContext) -> None:
        """Delete the NSX object of a CR (by body) or of a tracked CR UID.

        The allocation is released only after NSX confirmed the delete.
        """
        if isinstance(target, str):
            uid = target
            obj = self.store.get_by_uid(uid)
            if obj is None:
                logger.debug(f"No NSX ipaddressallocation tracked for {uid}, nothing to delete")
                return
            visibility = obj.get("ip_address_block_visibility", VISIBILITY_PRIVATE)
        else:
            uid = target["metadata"]["uid"]
            obj = self.store.get_by_uid(uid) or {"id": build_id(target)}
            visibility = obj.get("ip_address_block_visibility") or normalize_visibility(
                (target.get("spec") or {}).get("ipAddressBlockVisibility")
            )

        ctx.check()
        try:
            self.nsx_client.delete_ip_address_allocation(self._vpc_path(obj), obj["id"], ctx=ctx)
        except NotFoundError:
            logger.debug(f"NSX ipaddressallocation {obj['id']} already gone")
        self.store.untrack(uid)
        self._pending.discard(uid)
        self.allocator.release(pool_for_visibility(visibility), uid, obj.get("allocation_ips"))
        logger.debug(f"Successfully deleted NSX ipaddressallocation {obj['id']}")

    def delete_by_namespaced_name(self, namespace: str, name: str, ctx: ReconcileContext) -> None:
        for obj in self.store.get_by_index(INDEX_NAMESPACED_NAME, f"{namespace}/{name}"):
            uid = tag_value(obj.get("tags"), TAG_SCOPE_IP_ADDRESS_ALLOCATION_CR_UID)
            if uid:
                self.delete(uid, ctx)

    def list_tracked_ids(self) -> set[str]:
        return self.store.list_tracked_ids()

    def allocation_records(self) -> list[AllocationRecord]:
        return [record for pool in self.allocator.pools() for record in self.allocator.records(pool)]

    def release_stale_allocations(self, records: list[AllocationRecord], live_uids: set[str]) -> set[str]:
        """Release ranges whose owner CR is gone and which have no NSX object tracked.

        ``records`` must be read before ``live_uids`` so that a range allocated
        for a CR created in between is never released.
        """
        released: set[str] = set()
        for record in records:
            if record.owner in live_uids or self.store.get_by_uid(record.owner) is not None:
                continue
            if self.allocator.release(record.pool, record.owner, record.cidr) is not None:
                logger.info(f"Released stale allocation {record.cidr} of deleted CR {record.owner}")
                released.add(record.owner)
        return released

    def cleanup(self, ctx: ReconcileContext) -> int:
        """Delete every tracked NSX object."""
        uids = self.list_tracked_ids()
        logger.info(f"Cleaning up ipaddressallocation, count={len(uids)}")
        for uid in sorted(uids):
            ctx.check()
            self.delete(uid, ctx)
        return len(uids)
