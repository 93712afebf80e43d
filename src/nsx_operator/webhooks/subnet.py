"""Validating webhook for Subnet."""

from __future__ import annotations

import logging
from typing import Any

from ..allocator import is_power_of_two
from ..constants import (
    ANNOTATION_ASSOCIATED_RESOURCE,
    API_GROUP,
    API_VERSION,
    KIND_SUBNET,
    NSX_OPERATOR_SA,
    PLURAL_SUBNET_PORTS,
)
from .base import (
    HTTP_INTERNAL_SERVER_ERROR,
    AdmissionRequest,
    AdmissionResponse,
    Validator,
    allowed,
    denied,
    errored,
    spec_of,
)

logger = logging.getLogger(__name__)


def is_shared_subnet(obj: dict[str, Any]) -> bool:
    annotations = obj.get("metadata", {}).get("annotations") or {}
    return ANNOTATION_ASSOCIATED_RESOURCE in annotations


class SubnetValidator(Validator):
    """Subnet size, operator-owned fields and deletion while ports remain."""

    kind = KIND_SUBNET

    def validate_create(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        spec = spec_of(obj)
        size = spec.get("ipv4SubnetSize")
        if size and (not isinstance(size, int) or not is_power_of_two(size)):
            return denied(f"Subnet {req.namespace}/{req.name} has invalid size {size}: size must be a power of 2")
        if req.username == NSX_OPERATOR_SA:
            return allowed()
        if is_shared_subnet(obj):
            return denied(f"Shared Subnet {req.namespace}/{req.name} can only be created by NSX Operator")
        if spec.get("vpcName"):
            return denied(f"Subnet {req.namespace}/{req.name}: spec.vpcName can only be set by NSX Operator")
        if spec.get("vlanConnectionName"):
            return denied(
                f"Subnet {req.namespace}/{req.name}: spec.vlanConnectionName can only be set by NSX Operator"
            )
        return allowed()

    def validate_update(self, req: AdmissionRequest, old: dict[str, Any], new: dict[str, Any]) -> AdmissionResponse:
        if req.username == NSX_OPERATOR_SA:
            return allowed()
        if is_shared_subnet(old) or is_shared_subnet(new):
            return denied(f"Shared Subnet {req.namespace}/{req.name} can only be updated by NSX Operator")
        old_spec, new_spec = spec_of(old), spec_of(new)
        if old_spec.get("vpcName", "") != new_spec.get("vpcName", ""):
            return denied(f"Subnet {req.namespace}/{req.name}: spec.vpcName can only be updated by NSX Operator")
        if old_spec.get("vlanConnectionName", "") != new_spec.get("vlanConnectionName", ""):
            return denied(
                f"Subnet {req.namespace}/{req.name}: spec.vlanConnectionName can only be updated by NSX Operator"
            )
        if sorted(old_spec.get("ipAddresses") or []) != sorted(new_spec.get("ipAddresses") or []):
            return denied("ipAddresses is immutable")
        return allowed()

    def validate_delete(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        if req.username == NSX_OPERATOR_SA:
            return allowed()
        if is_shared_subnet(obj):
            return denied(f"Shared Subnet {req.namespace}/{req.name} can only be deleted by NSX Operator")
        try:
            ports = self.k8s.list_custom(
                API_GROUP, API_VERSION, PLURAL_SUBNET_PORTS, namespace=req.namespace, timeout=self.list_timeout
            )
        except Exception as e:
            logger.error(f"Failed to list SubnetPorts in Namespace {req.namespace}: {e}")
            return errored(HTTP_INTERNAL_SERVER_ERROR, e)
        if any(spec_of(port).get("subnet") == req.name for port in ports):
            return denied(f"Subnet {req.namespace}/{req.name} with stale SubnetPorts cannot be deleted")
        return allowed()
