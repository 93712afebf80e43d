"""Validating webhook for IPAddressAllocation."""

from __future__ import annotations

import logging
from typing import Any

from ..allocator import ip_in_range, is_power_of_two
from ..constants import (
    API_GROUP,
    API_VERSION,
    COND_READY,
    KIND_IP_ADDRESS_ALLOCATION,
    PLURAL_ADDRESS_BINDINGS,
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

IMMUTABLE_FIELDS = ("ipAddressBlockVisibility", "allocationIPs", "allocationSize")


class IPAddressAllocationValidator(Validator):
    """Guards IPAddressAllocation fields and refuses deletes of addresses in use."""

    kind = KIND_IP_ADDRESS_ALLOCATION

    def _validate_fields(self, obj: dict[str, Any]) -> AdmissionResponse | None:
        spec = spec_of(obj)
        name = obj.get("metadata", {}).get("name", "")
        if spec.get("allocationIPs") and spec.get("allocationSize"):
            return denied(f"IPAddressAllocation {name}: only one of allocationIPs and allocationSize can be set")
        size = spec.get("allocationSize")
        if size is not None:
            if not isinstance(size, int) or isinstance(size, bool) or not is_power_of_two(size):
                return denied(f"IPAddressAllocation {name}: allocationSize {size} must be a power of 2")
        return None

    def validate_create(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        return self._validate_fields(obj) or allowed()

    def validate_update(self, req: AdmissionRequest, old: dict[str, Any], new: dict[str, Any]) -> AdmissionResponse:
        response = self._validate_fields(new)
        if response is not None:
            return response
        old_spec, new_spec = spec_of(old), spec_of(new)
        for field in IMMUTABLE_FIELDS:
            if old_spec.get(field) and old_spec.get(field) != new_spec.get(field):
                return denied(f"IPAddressAllocation {req.name}: {field} is immutable")
        return allowed()

    def validate_delete(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        meta = obj.get("metadata", {})
        name = meta.get("name", req.name)
        namespace = meta.get("namespace", req.namespace)
        try:
            bindings = self.k8s.list_custom(
                API_GROUP, API_VERSION, PLURAL_ADDRESS_BINDINGS, namespace=namespace, timeout=self.list_timeout
            )
        except Exception as e:
            logger.error(f"Failed to list AddressBindings in Namespace {namespace}: {e}")
            return errored(HTTP_INTERNAL_SERVER_ERROR, e)
        for binding in bindings:
            if spec_of(binding).get("ipAddressAllocationName") == name:
                return denied(
                    f"IPAddressAllocation {name} is used by AddressBinding {binding.get('metadata', {}).get('name')}"
                )
        return self._validate_service_vip(req, obj)

    def _validate_service_vip(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        status = obj.get("status") or {}
        conditions = status.get("conditions") or []
        if not conditions or conditions[0].get("type") != COND_READY:
            return allowed()

        allocation_ips = status.get("allocationIPs") or ""
        name = obj.get("metadata", {}).get("name", req.name)
        try:
            services = self.k8s.list_services(req.namespace, timeout=self.list_timeout)
        except Exception as e:
            logger.error(f"Failed to list Services in Namespace {req.namespace}: {e}")
            return errored(HTTP_INTERNAL_SERVER_ERROR, e)

        for service in services:
            lb_ip = (service.get("spec") or {}).get("loadBalancerIP")
            if lb_ip and ip_in_range(lb_ip, allocation_ips):
                service_name = service.get("metadata", {}).get("name")
                return denied(
                    f"cannot delete IPAddressAllocation {name}: IP {lb_ip} is still in use by Service {service_name}"
                )
        return allowed()
