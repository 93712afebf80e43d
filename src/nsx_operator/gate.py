"""Per-namespace network-mode gate.

A CR is only reconciled when the default Network of its namespace is of the
NSX VPC type. System namespaces (annotated as sharing the kube-system VPC)
have no network of their own and defer to the single system namespace that
carries a default Network.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .constants import (
    ANNOTATION_SHARED_VPC_NAMESPACE,
    LABEL_DEFAULT_NETWORK,
    LABEL_DEFAULT_NETWORK_VALUE,
    NETOPERATOR_GROUP,
    NETOPERATOR_VERSION,
    NETWORK_TYPE_NSXT_VPC,
    PLURAL_NETWORKS,
    SHARED_VPC_SYSTEM_NAMESPACE,
)
from .events import CreateEvent, DeleteEvent, Event, GenericEvent, UpdateEvent, split_key
from .reconciler import ReconcileResult
from .utils.cache import TTLCache
from .utils.errors import NetworkModeError, NotFoundError, sanitize_exception

if TYPE_CHECKING:
    from .config import OperatorConfig
    from .k8s import KubeClient

logger = logging.getLogger(__name__)

Lister = Callable[[str], list[str]]
Enqueue = Callable[[str], None]


@dataclass(frozen=True)
class _Registration:
    resource: str
    lister: Lister
    enqueue: Enqueue


def is_default_network(network: dict[str, Any]) -> bool:
    labels = network.get("metadata", {}).get("labels") or {}
    value = labels.get(LABEL_DEFAULT_NETWORK)
    return value is not None and value.lower() == LABEL_DEFAULT_NETWORK_VALUE


def is_system_namespace(namespace_obj: dict[str, Any]) -> bool:
    annotations = namespace_obj.get("metadata", {}).get("annotations") or {}
    return annotations.get(ANNOTATION_SHARED_VPC_NAMESPACE) == SHARED_VPC_SYSTEM_NAMESPACE


def network_type(network: dict[str, Any]) -> str | None:
    return (network.get("spec") or {}).get("type")


class NetworkModeGate:
    """Decides whether CRs of a namespace are handled by this operator."""

    def __init__(self, k8s: KubeClient, config: OperatorConfig, cache: TTLCache | None = None) -> None:
        self.k8s = k8s
        self.config = config
        self.cache = cache if cache is not None else TTLCache(config.network_mode_cache_ttl_seconds)
        self._lock = threading.Lock()
        self._system_network_namespaces: set[str] = set()
        self._registrations: list[_Registration] = []

    @property
    def system_network_namespaces(self) -> set[str]:
        with self._lock:
            return set(self._system_network_namespaces)

    def register_lister(self, resource: str, lister: Lister, enqueue: Enqueue) -> None:
        """Register a downstream controller to be re-enqueued on a mode switch."""
        with self._lock:
            self._registrations.append(_Registration(resource, lister, enqueue))

    def invalidate(self, namespace: str | None = None) -> None:
        self.cache.invalidate(namespace)

    def _resolve_namespace(self, namespace: str) -> str:
        ns_obj = self.k8s.get_namespace(namespace)
        if not is_system_namespace(ns_obj):
            return namespace
        system = self.system_network_namespaces
        if not system:
            raise NetworkModeError(f"no shared VPC namespace found with system Namespace {namespace}")
        if len(system) > 1:
            raise NetworkModeError(
                f"multiple default Networks found in system Namespaces {sorted(system)}, cannot decide for {namespace}"
            )
        return next(iter(system))

    def _default_network(self, namespace: str) -> dict[str, Any]:
        networks = [
            n
            for n in self.k8s.list_custom(NETOPERATOR_GROUP, NETOPERATOR_VERSION, PLURAL_NETWORKS, namespace=namespace)
            if is_default_network(n)
        ]
        if not networks:
            raise NetworkModeError(f"no default network found in Namespace {namespace}")
        if len(networks) > 1:
            names = sorted(n.get("metadata", {}).get("name", "") for n in networks)
            raise NetworkModeError(f"multiple default networks found in Namespace {namespace}: {names}")
        return networks[0]

    def is_enabled(self, namespace: str) -> bool:
        """Whether the VPC network stack is enabled for ``namespace``.

        Raises:
            NetworkModeError: if no verdict can be determined
        """
        cached = self.cache.get(namespace)
        if cached is not None:
            return cached
        source = self._resolve_namespace(namespace)
        enabled = network_type(self._default_network(source)) == NETWORK_TYPE_NSXT_VPC
        self.cache.set(namespace, enabled)
        return enabled

    def reconcile_with_filters(
        self,
        resource: str,
        key: str,
        inner: Callable[[str], ReconcileResult],
    ) -> ReconcileResult:
        """Run ``inner`` only when the namespace of ``key`` is enabled."""
        namespace, name = split_key(key)
        try:
            enabled = self.is_enabled(namespace)
        except Exception as e:
            logger.error(
                f"Failed to check VPC enablement when processing {resource} {namespace}/{name}: "
                f"{sanitize_exception(e)}"
            )
            return ReconcileResult.requeue(e)
        if not enabled:
            logger.debug(f"VPC is not enabled, ignore {resource} {namespace}/{name}")
            return ReconcileResult.normal()
        return inner(key)

    def reconcile_network(self, namespace: str, name: str) -> ReconcileResult:
        """Handle creation of a default Network."""
        with self._lock:
            if namespace in self._system_network_namespaces:
                return ReconcileResult.normal()
        try:
            ns_obj = self.k8s.get_namespace(namespace)
        except NotFoundError:
            return ReconcileResult.normal()
        except Exception as e:
            logger.error(f"Failed to check Namespace {namespace}: {sanitize_exception(e)}")
            return ReconcileResult.requeue(e)
        if is_system_namespace(ns_obj):
            with self._lock:
                self._system_network_namespaces.add(namespace)
                count = len(self._system_network_namespaces)
            if count == 1:
                logger.info(f"Default Network {namespace}/{name} in system Namespace is created")
            else:
                logger.error(f"Multiple default Networks are found in system Namespaces ({count})")
            self.cache.invalidate()
        else:
            self.invalidate(namespace)
        return ReconcileResult.normal()

    def _should_reenqueue(self, event: UpdateEvent) -> bool:
        old, new = event.old, event.new
        if not is_default_network(new):
            return False
        if network_type(old) == network_type(new):
            return False
        namespace = new.get("metadata", {}).get("namespace", "")
        if network_type(new) != NETWORK_TYPE_NSXT_VPC:
            logger.info(f"Default Network in {namespace} updated its type to non-VPC, ignore")
            return False
        if namespace not in self.system_network_namespaces:
            logger.info(f"Ignore the update of Network type to VPC in non-system Namespace {namespace}")
            return False
        return True

    def handle(self, event: Event) -> None:
        """Dispatch a Network watch event."""
        if isinstance(event, CreateEvent):
            if is_default_network(event.obj):
                meta = event.obj.get("metadata", {})
                self.reconcile_network(meta.get("namespace", ""), meta.get("name", ""))
        elif isinstance(event, UpdateEvent):
            if is_default_network(event.new) and network_type(event.old) != network_type(event.new):
                namespace = event.new.get("metadata", {}).get("namespace", "")
                if namespace in self.system_network_namespaces:
                    self.invalidate()
                else:
                    self.invalidate(namespace)
            if self._should_reenqueue(event):
                self._reenqueue(event.new.get("metadata", {}).get("namespace", ""))
        elif isinstance(event, (DeleteEvent, GenericEvent)):
            logger.debug("Network delete or generic event, do nothing")

    def handle_namespace(self, event: Event) -> None:
        """Invalidate verdicts when a namespace's shared-VPC annotation changes."""
        if isinstance(event, UpdateEvent):
            if is_system_namespace(event.old) != is_system_namespace(event.new):
                self.invalidate(event.new.get("metadata", {}).get("name"))
        elif isinstance(event, DeleteEvent):
            name = event.obj.get("metadata", {}).get("name")
            self.invalidate(name)
            with self._lock:
                self._system_network_namespaces.discard(name)

    def _reenqueue(self, network_namespace: str) -> None:
        with self._lock:
            registrations = list(self._registrations)
            own_is_system = network_namespace in self._system_network_namespaces

        if own_is_system:
            try:
                namespaces = [
                    ns.get("metadata", {}).get("name", "")
                    for ns in self.k8s.list_namespaces()
                    if is_system_namespace(ns)
                ]
            except Exception as e:
                logger.error(f"Failed to list Namespaces after system network is updated to VPC: {e}")
                return
        else:
            namespaces = [network_namespace]

        for registration in registrations:
            keys: list[str] = []
            try:
                for namespace in namespaces:
                    keys.extend(registration.lister(namespace))
            except Exception as e:
                logger.error(f"Failed to list {registration.resource} CRs for re-enqueue: {e}")
                continue
            for key in keys:
                registration.enqueue(key)
            logger.info(f"Re-enqueued {len(keys)} {registration.resource} CRs after network mode switch")
