"""Validating webhook for AddressBinding."""

from __future__ import annotations

import logging
from typing import Any

from ..allocator import is_single_ip
from ..constants import (
    API_GROUP,
    API_VERSION,
    KIND_ADDRESS_BINDING,
    OPERATION_DELETE,
    PLURAL_ADDRESS_BINDINGS,
    PLURAL_IP_ADDRESS_ALLOCATIONS,
    VISIBILITY_EXTERNAL,
)
from ..utils.errors import NotFoundError
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


class AddressBindingValidator(Validator):
    """One AddressBinding per VM interface, bound to a single external IP."""

    kind = KIND_ADDRESS_BINDING

    def _dispatch(self, req: AdmissionRequest) -> AdmissionResponse:
        if req.operation == OPERATION_DELETE:
            return allowed()
        return super()._dispatch(req)

    def validate_create(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        meta = obj.get("metadata", {})
        namespace = meta.get("namespace", req.namespace)
        spec = spec_of(obj)
        vm_name = spec.get("vmName", "")
        interface_name = spec.get("interfaceName", "")
        try:
            existing = [
                ab
                for ab in self.k8s.list_custom(
                    API_GROUP, API_VERSION, PLURAL_ADDRESS_BINDINGS, namespace=namespace, timeout=self.list_timeout
                )
                if spec_of(ab).get("vmName", "") == vm_name
            ]
        except Exception as e:
            logger.error(f"Failed to list AddressBindings for VM {namespace}/{vm_name}: {e}")
            return errored(HTTP_INTERNAL_SERVER_ERROR, e)

        has_default = interface_name == "" or any(spec_of(ab).get("interfaceName", "") == "" for ab in existing)
        for ab in existing:
            if ab.get("metadata", {}).get("name") == meta.get("name"):
                continue
            if has_default or spec_of(ab).get("interfaceName", "") == interface_name:
                return denied("interface already has AddressBinding")
        return self._validate_allocation(namespace, spec)

    def validate_update(self, req: AdmissionRequest, old: dict[str, Any], new: dict[str, Any]) -> AdmissionResponse:
        old_spec, new_spec = spec_of(old), spec_of(new)
        if old_spec.get("vmName", "") != new_spec.get("vmName", "") or old_spec.get(
            "interfaceName", ""
        ) != new_spec.get("interfaceName", ""):
            return denied("update AddressBinding vmName/interfaceName is not allowed")
        return self._validate_allocation(new.get("metadata", {}).get("namespace", req.namespace), new_spec)

    def _validate_allocation(self, namespace: str, spec: dict[str, Any]) -> AdmissionResponse:
        allocation_name = spec.get("ipAddressAllocationName")
        if not allocation_name:
            return allowed()
        try:
            allocation = self.k8s.get_custom(
                API_GROUP,
                API_VERSION,
                PLURAL_IP_ADDRESS_ALLOCATIONS,
                namespace,
                allocation_name,
                timeout=self.list_timeout,
            )
        except NotFoundError:
            return denied(f"IPAddressAllocation {allocation_name} does not exist")
        except Exception as e:
            logger.error(f"Failed to get IPAddressAllocation {namespace}/{allocation_name}: {e}")
            return errored(HTTP_INTERNAL_SERVER_ERROR, e)

        allocation_spec = spec_of(allocation)
        visibility = (allocation_spec.get("ipAddressBlockVisibility") or "").upper()
        if visibility != VISIBILITY_EXTERNAL:
            return denied('IPBlock visibility of IPAddressAllocation must be "External"')
        allocation_ips = allocation_spec.get("allocationIPs") or ""
        if (allocation_ips and not is_single_ip(allocation_ips)) or (
            not allocation_ips and allocation_spec.get("allocationSize") != 1
        ):
            return denied("IPAddressAllocation must be a single IP")
        return allowed()
