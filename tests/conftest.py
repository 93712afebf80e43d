"""Shared fixtures and in-memory fakes for the Kubernetes and NSX clients."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from nsx_operator.config import OperatorConfig
from nsx_operator.constants import REALIZED_STATE_REALIZED
from nsx_operator.utils.errors import NotFoundError


class FakeKube:
    """Dict-backed stand-in for ``nsx_operator.k8s.KubeClient``."""

    def __init__(self) -> None:
        self.custom: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.namespaces: dict[str, dict[str, Any]] = {}
        self.services: dict[str, list[dict[str, Any]]] = {}
        self.status_patches: list[tuple[str, str, str, dict[str, Any]]] = []
        self.list_calls: list[tuple[str, str | None]] = []
        self.list_error: Exception | None = None
        self.services_error: Exception | None = None

    def add_custom(self, plural: str, obj: dict[str, Any]) -> dict[str, Any]:
        meta = obj["metadata"]
        self.custom[(plural, meta.get("namespace", ""), meta["name"], "")] = obj
        return obj

    def add_namespace(self, name: str, annotations: dict[str, str] | None = None) -> dict[str, Any]:
        ns = {"metadata": {"name": name, "uid": f"ns-uid-{name}", "annotations": annotations or {}}}
        self.namespaces[name] = ns
        return ns

    def get_custom(self, group, version, plural, namespace, name, timeout=None):
        obj = self.custom.get((plural, namespace, name, ""))
        if obj is None:
            raise NotFoundError(f"{plural} {namespace}/{name} not found")
        return copy.deepcopy(obj)

    def list_custom(self, group, version, plural, namespace=None, label_selector=None, timeout=None):
        self.list_calls.append((plural, namespace))
        if self.list_error is not None:
            raise self.list_error
        return [
            copy.deepcopy(obj)
            for (p, ns, _, _), obj in sorted(self.custom.items(), key=lambda kv: kv[0])
            if p == plural and (namespace is None or ns == namespace)
        ]

    def patch_custom_status(self, group, version, plural, namespace, name, status):
        self.status_patches.append((plural, namespace, name, copy.deepcopy(status)))
        obj = self.custom.get((plural, namespace, name, ""))
        if obj is None:
            raise NotFoundError(f"{plural} {namespace}/{name} not found")
        obj.setdefault("status", {}).update(copy.deepcopy(status))
        return copy.deepcopy(obj)

    def get_namespace(self, name):
        ns = self.namespaces.get(name)
        if ns is None:
            raise NotFoundError(f"namespace {name} not found")
        return copy.deepcopy(ns)

    def list_namespaces(self):
        return [copy.deepcopy(ns) for ns in self.namespaces.values()]

    def list_services(self, namespace, timeout=None):
        if self.services_error is not None:
            raise self.services_error
        return copy.deepcopy(self.services.get(namespace, []))


class FakeNSX:
    """In-memory NSX Policy API covering the calls the operator makes."""

    def __init__(self) -> None:
        self.allocations: dict[str, dict[str, Any]] = {}
        self.realized_state = REALIZED_STATE_REALIZED
        self.realized_alarms: list[dict[str, Any]] = []
        self.next_cidr = "10.0.0.0/28"
        self.calls: list[tuple[str, str]] = []
        self.delete_error: Exception | None = None
        self.patch_error: Exception | None = None

    def search_by_tag(self, resource_type, tag_scope, cluster, ctx=None):
        self.calls.append(("search_by_tag", resource_type))
        return [copy.deepcopy(obj) for obj in self.allocations.values()]

    def patch_ip_address_allocation(self, vpc_path, allocation_id, body, ctx=None):
        self.calls.append(("patch", allocation_id))
        if self.patch_error is not None:
            raise self.patch_error
        obj = copy.deepcopy(body)
        obj.setdefault("allocation_ips", self.next_cidr)
        obj["path"] = f"{vpc_path}/ip-address-allocations/{allocation_id}"
        obj["parent_path"] = vpc_path
        self.allocations[allocation_id] = obj

    def get_ip_address_allocation(self, vpc_path, allocation_id, ctx=None):
        self.calls.append(("get", allocation_id))
        obj = self.allocations.get(allocation_id)
        if obj is None:
            raise NotFoundError(f"{allocation_id} not found")
        return copy.deepcopy(obj)

    def delete_ip_address_allocation(self, vpc_path, allocation_id, ctx=None):
        self.calls.append(("delete", allocation_id))
        if self.delete_error is not None:
            raise self.delete_error
        if allocation_id not in self.allocations:
            raise NotFoundError(f"{allocation_id} not found")
        del self.allocations[allocation_id]

    def list_realized_entities(self, intent_path, ctx=None):
        self.calls.append(("realized", intent_path))
        return [
            {
                "entity_type": "RealizedVpcIpAddressAllocation",
                "state": self.realized_state,
                "alarms": self.realized_alarms,
            }
        ]


def make_cr(
    name: str = "alloc-1",
    namespace: str = "ns1",
    uid: str = "uid-1",
    spec: dict[str, Any] | None = None,
    status: dict[str, Any] | None = None,
) -> dict[str, Any]:
    cr: dict[str, Any] = {
        "apiVersion": "crd.nsx.vmware.com/v1alpha1",
        "kind": "IPAddressAllocation",
        "metadata": {"name": name, "namespace": namespace, "uid": uid},
        "spec": spec if spec is not None else {"ipAddressBlockVisibility": "Private", "allocationSize": 16},
    }
    if status is not None:
        cr["status"] = status
    return cr


@pytest.fixture
def config() -> OperatorConfig:
    return OperatorConfig(
        cluster="cl1",
        realize_steps=2,
        realize_interval_seconds=0.0,
        realize_timeout_seconds=5.0,
        metrics_enabled=True,
    )


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()


@pytest.fixture
def nsx() -> FakeNSX:
    return FakeNSX()
