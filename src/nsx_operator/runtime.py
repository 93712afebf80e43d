"""Assembly of the long-lived operator components.

kopf handlers are module-level functions; they reach the components built at
startup through :func:`get_runtime`.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from .allocator import IPAllocator
from .constants import (
    API_GROUP,
    API_VERSION,
    KIND_ADDRESS_BINDING,
    KIND_IP_ADDRESS_ALLOCATION,
    KIND_SUBNET,
    METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION,
    PLURAL_IP_ADDRESS_ALLOCATIONS,
    POOL_EXTERNAL,
    POOL_PRIVATE,
)
from .controller import Controller
from .events import LastSeen, namespaced_key
from .gate import NetworkModeGate
from .gc import ScheduledTask, collect_garbage
from .health import HealthState
from .reconciler import GenericReconciler
from .services.ipaddressallocation import (
    IPAddressAllocationService,
    build_not_ready_conditions,
    build_ready_conditions,
)
from .status import K8sStatusUpdater
from .utils.context import ReconcileContext
from .webhooks import AddressBindingValidator, IPAddressAllocationValidator, SubnetValidator, Validator
from .workqueue import RateLimitingQueue

if TYPE_CHECKING:
    from .config import OperatorConfig
    from .k8s import KubeClient
    from .services.nsx.base import NSXProvider

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_current: OperatorRuntime | None = None


class OperatorRuntime:
    """Every component of a running operator, wired together."""

    def __init__(
        self,
        config: OperatorConfig,
        k8s: KubeClient,
        nsx_client: NSXProvider,
        health_state: HealthState | None = None,
    ) -> None:
        self.config = config
        self.k8s = k8s
        self.nsx_client = nsx_client
        self.health_state = health_state if health_state is not None else HealthState()

        self.allocator = IPAllocator(
            {
                POOL_EXTERNAL: config.external_ip_blocks,
                POOL_PRIVATE: config.private_ip_blocks,
            }
        )
        self.gate = NetworkModeGate(k8s, config)
        self.network_events = LastSeen()
        self.namespace_events = LastSeen()

        self.ipaddressallocation_service = IPAddressAllocationService(nsx_client, config, self.allocator, k8s=k8s)
        self.ipaddressallocation_status = K8sStatusUpdater(
            k8s,
            config,
            KIND_IP_ADDRESS_ALLOCATION,
            API_GROUP,
            API_VERSION,
            PLURAL_IP_ADDRESS_ALLOCATIONS,
            METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION,
        )
        self.ipaddressallocation_reconciler = GenericReconciler(
            KIND_IP_ADDRESS_ALLOCATION,
            API_GROUP,
            API_VERSION,
            PLURAL_IP_ADDRESS_ALLOCATIONS,
            METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION,
            k8s,
            self.ipaddressallocation_service,
            self.ipaddressallocation_status,
            self.gate,
            config,
            build_ready_conditions,
            build_not_ready_conditions,
        )
        self.ipaddressallocation_controller = Controller(
            METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION,
            self.ipaddressallocation_reconciler,
            RateLimitingQueue(name=METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION),
            workers=config.max_concurrent_reconciles,
            reconcile_timeout=config.reconcile_timeout_seconds,
        )
        self.gate.register_lister(
            KIND_IP_ADDRESS_ALLOCATION,
            self.list_ipaddressallocation_keys,
            self.ipaddressallocation_controller.enqueue,
        )
        self.gc_task = ScheduledTask(
            f"{METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION}-gc",
            config.gc_interval_seconds,
            self.collect_ipaddressallocation_garbage,
        )

        self.validators: dict[str, Validator] = {
            KIND_IP_ADDRESS_ALLOCATION: IPAddressAllocationValidator(k8s, config),
            KIND_ADDRESS_BINDING: AddressBindingValidator(k8s, config),
            KIND_SUBNET: SubnetValidator(k8s, config),
        }
        self.health_state.register(
            f"{METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION}-store", self.ipaddressallocation_service.ready
        )

    def list_ipaddressallocation_keys(self, namespace: str) -> list[str]:
        items = self.k8s.list_custom(API_GROUP, API_VERSION, PLURAL_IP_ADDRESS_ALLOCATIONS, namespace=namespace)
        return [namespaced_key(item) for item in items]

    def list_live_ipaddressallocation_uids(self) -> set[str]:
        items = self.k8s.list_custom(API_GROUP, API_VERSION, PLURAL_IP_ADDRESS_ALLOCATIONS)
        return {item.get("metadata", {}).get("uid") for item in items if item.get("metadata", {}).get("uid")}

    def collect_ipaddressallocation_garbage(self, ctx: ReconcileContext) -> Any:
        """Delete orphaned NSX objects, then release ranges left by CRs that never reached NSX."""
        service = self.ipaddressallocation_service
        # Read before the live list, like the store snapshot in collect_garbage.
        allocations = service.allocation_records()
        live: list[set[str]] = []

        def list_live_uids() -> set[str]:
            if not live:
                live.append(self.list_live_ipaddressallocation_uids())
            return live[0]

        try:
            return collect_garbage(METRIC_RES_TYPE_IP_ADDRESS_ALLOCATION, service, list_live_uids, ctx)
        finally:
            if allocations and not ctx.done():
                service.release_stale_allocations(allocations, list_live_uids())

    def cleanup(self, ctx: ReconcileContext) -> int:
        """Delete every NSX object this cluster created, for uninstall."""
        self.ipaddressallocation_service.initialize(ctx)
        return self.ipaddressallocation_service.cleanup(ctx)

    def start(self, ctx: ReconcileContext | None = None) -> None:
        """Rehydrate the stores, then start workers and the garbage collector."""
        self.ipaddressallocation_service.initialize(ctx)
        self.ipaddressallocation_controller.start()
        self.gc_task.start()

    def stop(self, timeout: float | None = None) -> None:
        self.gc_task.stop(timeout)
        self.ipaddressallocation_controller.stop(timeout)


def set_runtime(runtime: OperatorRuntime | None) -> None:
    global _current
    with _lock:
        _current = runtime


def get_runtime() -> OperatorRuntime:
    """Return the runtime built at startup.

    Raises:
        RuntimeError: if the operator has not finished starting
    """
    with _lock:
        runtime = _current
    if runtime is None:
        raise RuntimeError("operator runtime is not initialized")
    return runtime
