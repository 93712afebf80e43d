"""Thin wrapper around the Kubernetes API client."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from .constants import FIELD_MANAGER
from .utils.errors import BackendUnavailableError, NotFoundError

logger = logging.getLogger(__name__)


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def _translate(e: ApiException, what: str) -> Exception:
    if e.status == 404:
        return NotFoundError(f"{what} not found")
    if e.status == 429 or (e.status or 0) >= 500:
        return BackendUnavailableError(f"Kubernetes API error for {what}: {e.reason}", status=e.status)
    return e


class KubeClient:
    """CR reads, Status-subresource writes and core object listing.

    Every object is returned as a plain dict with the API field names.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi | None = None,
        core_api: client.CoreV1Api | None = None,
    ) -> None:
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.core_api = core_api or client.CoreV1Api()
        self._serializer = client.ApiClient()

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self._serializer.sanitize_for_serialization(obj)

    def get_custom(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str,
        name: str,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Get a namespaced custom object.

        Raises:
            NotFoundError: if the object does not exist
        """
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["_request_timeout"] = timeout
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                **kwargs,
            )
        except ApiException as e:
            raise _translate(e, f"{plural} {namespace}/{name}") from e

    def list_custom(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str | None = None,
        label_selector: str | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if timeout is not None:
            kwargs["_request_timeout"] = timeout
        try:
            if namespace:
                result = self.custom_api.list_namespaced_custom_object(
                    group=group, version=version, namespace=namespace, plural=plural, **kwargs
                )
            else:
                result = self.custom_api.list_cluster_custom_object(
                    group=group, version=version, plural=plural, **kwargs
                )
        except ApiException as e:
            raise _translate(e, f"{plural} in {namespace or 'all namespaces'}") from e
        return list(result.get("items", []))

    def patch_custom_status(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str,
        name: str,
        status: dict[str, Any],
    ) -> dict[str, Any]:
        """Patch only the Status subresource of a custom object."""
        try:
            return self.custom_api.patch_namespaced_custom_object_status(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
                body={"status": status},
                field_manager=FIELD_MANAGER,
            )
        except ApiException as e:
            raise _translate(e, f"{plural} {namespace}/{name}") from e

    def get_namespace(self, name: str) -> dict[str, Any]:
        try:
            return self._to_dict(self.core_api.read_namespace(name=name))
        except ApiException as e:
            raise _translate(e, f"namespace {name}") from e

    def list_namespaces(self) -> list[dict[str, Any]]:
        try:
            result = self.core_api.list_namespace()
        except ApiException as e:
            raise _translate(e, "namespaces") from e
        return [self._to_dict(item) for item in self._to_dict(result).get("items", [])]

    def list_services(self, namespace: str, timeout: float | None = None) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["_request_timeout"] = timeout
        try:
            result = self.core_api.list_namespaced_service(namespace=namespace, **kwargs)
        except ApiException as e:
            raise _translate(e, f"services in {namespace}") from e
        return [self._to_dict(item) for item in self._to_dict(result).get("items", [])]
