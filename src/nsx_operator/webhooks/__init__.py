"""Validating admission webhooks."""

from .addressbinding import AddressBindingValidator
from .base import AdmissionRequest, AdmissionResponse, Validator, allowed, denied, errored
from .ipaddressallocation import IPAddressAllocationValidator
from .subnet import SubnetValidator

__all__ = [
    "AddressBindingValidator",
    "AdmissionRequest",
    "AdmissionResponse",
    "IPAddressAllocationValidator",
    "SubnetValidator",
    "Validator",
    "allowed",
    "denied",
    "errored",
]
