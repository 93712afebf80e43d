"""Admission request/response model shared by the validating webhooks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .. import metrics
from ..constants import OPERATION_CREATE, OPERATION_DELETE, OPERATION_UPDATE
from ..utils.errors import sanitize_exception

if TYPE_CHECKING:
    from ..config import OperatorConfig
    from ..k8s import KubeClient

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_FORBIDDEN = 403
HTTP_INTERNAL_SERVER_ERROR = 500


class DecodeError(ValueError):
    """The admission payload is not a usable object."""


@dataclass(frozen=True)
class AdmissionRequest:
    operation: str
    namespace: str
    name: str
    object: dict[str, Any] | None = None
    old_object: dict[str, Any] | None = None
    username: str = ""


@dataclass(frozen=True)
class AdmissionResponse:
    allowed: bool
    code: int = HTTP_OK
    message: str = ""
    errored: bool = field(default=False, compare=False)

    @property
    def result(self) -> str:
        if self.errored:
            return "errored"
        return "allowed" if self.allowed else "denied"


def allowed(message: str = "") -> AdmissionResponse:
    return AdmissionResponse(allowed=True, message=message)


def denied(message: str) -> AdmissionResponse:
    return AdmissionResponse(allowed=False, code=HTTP_FORBIDDEN, message=message)


def errored(code: int, err: BaseException) -> AdmissionResponse:
    return AdmissionResponse(allowed=False, code=code, message=sanitize_exception(err), errored=True)


def decode(raw: Any, what: str) -> dict[str, Any]:
    """Check the raw payload looks like a Kubernetes object."""
    if not isinstance(raw, dict):
        raise DecodeError(f"cannot decode {what}: expected an object, got {type(raw).__name__}")
    metadata = raw.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise DecodeError(f"cannot decode {what}: metadata is not an object")
    spec = raw.get("spec")
    if spec is not None and not isinstance(spec, dict):
        raise DecodeError(f"cannot decode {what}: spec is not an object")
    return raw


def spec_of(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("spec") or {}


class Validator:
    """Decodes an :class:`AdmissionRequest` and dispatches on its operation.

    Subclasses override ``validate_create``, ``validate_update`` and
    ``validate_delete``; every hook allows by default.
    """

    kind = ""

    def __init__(self, k8s: KubeClient, config: OperatorConfig) -> None:
        self.k8s = k8s
        self.config = config
        self.list_timeout = config.admission_list_timeout_seconds

    def handle(self, req: AdmissionRequest) -> AdmissionResponse:
        logger.info(f"Handling {self.kind} admission request, user={req.username} operation={req.operation}")
        response = self._dispatch(req)
        if not response.allowed:
            logger.info(f"{req.operation} {self.kind} {req.namespace}/{req.name} rejected: {response.message}")
        metrics.admission_total.labels(kind=self.kind, operation=req.operation, result=response.result).inc()
        return response

    def _dispatch(self, req: AdmissionRequest) -> AdmissionResponse:
        try:
            if req.operation == OPERATION_DELETE:
                obj = decode(req.old_object, self.kind)
            else:
                obj = decode(req.object, self.kind)
        except DecodeError as e:
            logger.error(f"Error while decoding {self.kind} {req.namespace}/{req.name}: {e}")
            return errored(HTTP_BAD_REQUEST, e)

        if req.operation == OPERATION_CREATE:
            return self.validate_create(req, obj)
        if req.operation == OPERATION_UPDATE:
            try:
                old = decode(req.old_object, f"old {self.kind}")
            except DecodeError as e:
                logger.error(f"Failed to decode old {self.kind} {req.namespace}/{req.name}: {e}")
                return errored(HTTP_BAD_REQUEST, e)
            return self.validate_update(req, old, obj)
        if req.operation == OPERATION_DELETE:
            return self.validate_delete(req, obj)
        return allowed()

    def validate_create(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        return allowed()

    def validate_update(self, req: AdmissionRequest, old: dict[str, Any], new: dict[str, Any]) -> AdmissionResponse:
        return allowed()

    def validate_delete(self, req: AdmissionRequest, obj: dict[str, Any]) -> AdmissionResponse:
        return allowed()
