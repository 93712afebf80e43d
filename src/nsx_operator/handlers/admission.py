"""kopf validating handlers delegating to the admission validators."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import kopf

from ..constants import (
    API_GROUP_VERSION,
    KIND_ADDRESS_BINDING,
    KIND_IP_ADDRESS_ALLOCATION,
    KIND_SUBNET,
    OPERATION_DELETE,
)
from ..runtime import get_runtime
from ..webhooks import AdmissionRequest


def _raw(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        return dict(obj)
    return obj


def build_request(
    operation: str,
    body: Any,
    old: Any,
    userinfo: Mapping[str, Any] | None,
    name: str | None,
    namespace: str | None,
) -> AdmissionRequest:
    """Translate kopf's admission kwargs into an :class:`AdmissionRequest`."""
    return AdmissionRequest(
        operation=operation,
        namespace=namespace or "",
        name=name or "",
        object=None if operation == OPERATION_DELETE else _raw(body),
        old_object=_raw(old) if old is not None else (_raw(body) if operation == OPERATION_DELETE else None),
        username=(userinfo or {}).get("username", ""),
    )


def admit(kind: str, request: AdmissionRequest) -> None:
    """Run the validator of ``kind``.

    Raises:
        kopf.AdmissionError: when the request is denied or errored
    """
    response = get_runtime().validators[kind].handle(request)
    if not response.allowed:
        raise kopf.AdmissionError(response.message, code=response.code)


@kopf.on.validate(API_GROUP_VERSION, KIND_IP_ADDRESS_ALLOCATION, id="validate-ipaddressallocation")
def validate_ipaddressallocation(
    operation: str,
    body: Any,
    old: Any,
    userinfo: Mapping[str, Any],
    name: str | None,
    namespace: str | None,
    **_: Any,
) -> None:
    admit(KIND_IP_ADDRESS_ALLOCATION, build_request(operation, body, old, userinfo, name, namespace))


@kopf.on.validate(API_GROUP_VERSION, KIND_ADDRESS_BINDING, id="validate-addressbinding")
def validate_addressbinding(
    operation: str,
    body: Any,
    old: Any,
    userinfo: Mapping[str, Any],
    name: str | None,
    namespace: str | None,
    **_: Any,
) -> None:
    admit(KIND_ADDRESS_BINDING, build_request(operation, body, old, userinfo, name, namespace))


@kopf.on.validate(API_GROUP_VERSION, KIND_SUBNET, id="validate-subnet")
def validate_subnet(
    operation: str,
    body: Any,
    old: Any,
    userinfo: Mapping[str, Any],
    name: str | None,
    namespace: str | None,
    **_: Any,
) -> None:
    admit(KIND_SUBNET, build_request(operation, body, old, userinfo, name, namespace))
