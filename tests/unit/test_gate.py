"""Tests for the per-namespace network-mode gate."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import FakeKube

from nsx_operator.config import OperatorConfig
from nsx_operator.constants import (
    ANNOTATION_SHARED_VPC_NAMESPACE,
    NETWORK_TYPE_NSXT_VPC,
    PLURAL_NETWORKS,
    SHARED_VPC_SYSTEM_NAMESPACE,
)
from nsx_operator.events import CreateEvent, DeleteEvent, UpdateEvent
from nsx_operator.gate import NetworkModeGate, is_default_network
from nsx_operator.reconciler import ReconcileResult, Result
from nsx_operator.utils.cache import TTLCache
from nsx_operator.utils.errors import NetworkModeError

SYSTEM_ANNOTATIONS = {ANNOTATION_SHARED_VPC_NAMESPACE: SHARED_VPC_SYSTEM_NAMESPACE}


def network(namespace: str, name: str = "default", net_type: str = NETWORK_TYPE_NSXT_VPC, default: str = "true"):
    return {
        "metadata": {"name": name, "namespace": namespace, "labels": {"is-default-network": default}},
        "spec": {"type": net_type},
    }


class TestIsDefaultNetwork:
    """Test cases for is_default_network."""

    def test_label_is_case_insensitive(self):
        """Test the default-network label value ignores case."""
        assert is_default_network(network("ns1", default="True"))
        assert not is_default_network(network("ns1", default="false"))
        assert not is_default_network({"metadata": {}})


class TestNetworkModeGate:
    """Test cases for NetworkModeGate."""

    def setup_method(self):
        """Create a gate over a fake cluster."""
        self.kube = FakeKube()
        self.gate = NetworkModeGate(self.kube, OperatorConfig())

    def test_keeps_injected_empty_cache(self):
        """Test an injected verdict cache is used even while empty."""
        cache = TTLCache(30.0)
        assert NetworkModeGate(self.kube, OperatorConfig(), cache=cache).cache is cache

    def test_vpc_network_enables(self):
        """Test a VPC default network enables the namespace."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1"))
        assert self.gate.is_enabled("ns1") is True

    def test_non_vpc_network_disables(self):
        """Test a non-VPC default network disables the namespace."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1", net_type="vsphere-distributed"))
        assert self.gate.is_enabled("ns1") is False

    def test_non_default_networks_ignored(self):
        """Test networks without the default label are ignored."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1", name="extra", default="false"))
        with pytest.raises(NetworkModeError, match="no default network"):
            self.gate.is_enabled("ns1")

    def test_multiple_default_networks(self):
        """Test more than one default network is an error."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1", name="a"))
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1", name="b"))
        with pytest.raises(NetworkModeError, match="multiple default networks"):
            self.gate.is_enabled("ns1")

    def test_verdict_is_cached(self):
        """Test a second lookup is served from the cache."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1"))
        self.gate.is_enabled("ns1")
        self.gate.is_enabled("ns1")
        assert self.kube.list_calls == [(PLURAL_NETWORKS, "ns1")]

    def test_system_namespace_uses_system_network(self):
        """Test a system namespace defers to the system network namespace."""
        self.kube.add_namespace("kube-system", SYSTEM_ANNOTATIONS)
        self.kube.add_namespace("vmware-system", SYSTEM_ANNOTATIONS)
        self.kube.add_custom(PLURAL_NETWORKS, network("kube-system"))
        self.gate.handle(CreateEvent(network("kube-system")))

        assert self.gate.system_network_namespaces == {"kube-system"}
        assert self.gate.is_enabled("vmware-system") is True
        assert self.kube.list_calls == [(PLURAL_NETWORKS, "kube-system")]

    def test_system_namespace_without_system_network(self):
        """Test a system namespace with no known system network has no verdict."""
        self.kube.add_namespace("vmware-system", SYSTEM_ANNOTATIONS)
        with pytest.raises(NetworkModeError, match="no shared VPC namespace"):
            self.gate.is_enabled("vmware-system")

    def test_multiple_system_networks(self):
        """Test more than one system network namespace has no verdict."""
        for ns in ("kube-system", "other-system", "vmware-system"):
            self.kube.add_namespace(ns, SYSTEM_ANNOTATIONS)
        self.gate.handle(CreateEvent(network("kube-system")))
        self.gate.handle(CreateEvent(network("other-system")))
        with pytest.raises(NetworkModeError, match="multiple default Networks"):
            self.gate.is_enabled("vmware-system")

    def test_reconcile_with_filters_disabled(self):
        """Test the inner reconcile is skipped for a disabled namespace."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1", net_type="vsphere-distributed"))
        inner = MagicMock()

        assert self.gate.reconcile_with_filters("IPAddressAllocation", "ns1/a", inner) == ReconcileResult.normal()
        inner.assert_not_called()

    def test_reconcile_with_filters_enabled(self):
        """Test the inner reconcile runs for an enabled namespace."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1"))
        inner = MagicMock(return_value=ReconcileResult.requeue())

        result = self.gate.reconcile_with_filters("IPAddressAllocation", "ns1/a", inner)
        assert result.result is Result.REQUEUE
        inner.assert_called_once_with("ns1/a")

    def test_reconcile_with_filters_error_requeues(self):
        """Test an undeterminable verdict requeues."""
        self.kube.add_namespace("ns1")
        inner = MagicMock()

        result = self.gate.reconcile_with_filters("IPAddressAllocation", "ns1/a", inner)
        assert result.result is Result.REQUEUE
        assert isinstance(result.error, NetworkModeError)
        inner.assert_not_called()

    def test_type_switch_invalidates_cache(self):
        """Test a default network type change drops the cached verdict."""
        self.kube.add_namespace("ns1")
        old = self.kube.add_custom(PLURAL_NETWORKS, network("ns1", net_type="vsphere-distributed"))
        assert self.gate.is_enabled("ns1") is False

        new = network("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, new)
        self.gate.handle(UpdateEvent(old=old, new=new))

        assert self.gate.is_enabled("ns1") is True

    def test_system_switch_to_vpc_reenqueues(self):
        """Test switching the system network to VPC re-enqueues CRs of every system namespace."""
        self.kube.add_namespace("kube-system", SYSTEM_ANNOTATIONS)
        self.kube.add_namespace("vmware-system", SYSTEM_ANNOTATIONS)
        self.kube.add_namespace("ns1")
        old = network("kube-system", net_type="vsphere-distributed")
        self.gate.handle(CreateEvent(old))
        lister = MagicMock(side_effect=lambda ns: [f"{ns}/alloc"])
        enqueue = MagicMock()
        self.gate.register_lister("IPAddressAllocation", lister, enqueue)

        self.gate.handle(UpdateEvent(old=old, new=network("kube-system")))

        assert sorted(c[0][0] for c in enqueue.call_args_list) == ["kube-system/alloc", "vmware-system/alloc"]

    def test_switch_in_regular_namespace_does_not_reenqueue(self):
        """Test a VPC switch outside system namespaces re-enqueues nothing."""
        self.kube.add_namespace("ns1")
        enqueue = MagicMock()
        self.gate.register_lister("IPAddressAllocation", lambda ns: [f"{ns}/a"], enqueue)

        self.gate.handle(UpdateEvent(old=network("ns1", net_type="vsphere-distributed"), new=network("ns1")))
        enqueue.assert_not_called()

    def test_switch_away_from_vpc_does_not_reenqueue(self):
        """Test a switch to a non-VPC type re-enqueues nothing."""
        self.kube.add_namespace("kube-system", SYSTEM_ANNOTATIONS)
        self.gate.handle(CreateEvent(network("kube-system")))
        enqueue = MagicMock()
        self.gate.register_lister("IPAddressAllocation", lambda ns: [f"{ns}/a"], enqueue)

        self.gate.handle(
            UpdateEvent(old=network("kube-system"), new=network("kube-system", net_type="vsphere-distributed"))
        )
        enqueue.assert_not_called()

    def test_namespace_delete_forgets_system_network(self):
        """Test deleting a namespace drops it from the system set."""
        self.kube.add_namespace("kube-system", SYSTEM_ANNOTATIONS)
        self.gate.handle(CreateEvent(network("kube-system")))

        self.gate.handle_namespace(DeleteEvent({"metadata": {"name": "kube-system"}}))
        assert self.gate.system_network_namespaces == set()

    def test_namespace_annotation_change_invalidates(self):
        """Test a shared-VPC annotation change drops the namespace verdict."""
        self.kube.add_namespace("ns1")
        self.kube.add_custom(PLURAL_NETWORKS, network("ns1"))
        self.gate.is_enabled("ns1")

        self.gate.handle_namespace(
            UpdateEvent(
                old={"metadata": {"name": "ns1", "annotations": {}}},
                new={"metadata": {"name": "ns1", "annotations": SYSTEM_ANNOTATIONS}},
            )
        )
        assert self.gate.cache.get("ns1") is None
