"""NSX Policy API client implementation."""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING, Any

import requests

from ... import metrics
from ...constants import TAG_SCOPE_CLUSTER
from ...utils.context import ReconcileContext
from ...utils.errors import (
    BackendUnavailableError,
    NotFoundError,
    NSXApiError,
    sanitize_error_message,
)
from ...utils.rate_limit import RateLimiter, is_rate_limit_status

if TYPE_CHECKING:
    from ...config import OperatorConfig

logger = logging.getLogger(__name__)

POLICY_API_PREFIX = "/policy/api/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
SEARCH_PAGE_SIZE = 1000

_VPC_PATH_RE = re.compile(r"/orgs/([^/]+)/projects/([^/]+)/vpcs/([^/]+)")


def parse_vpc_path(path: str) -> tuple[str, str, str]:
    """Return ``(org, project, vpc)`` of a VPC resource path."""
    match = _VPC_PATH_RE.search(path)
    if match is None:
        raise ValueError(f"invalid path '{path}'")
    return match.group(1), match.group(2), match.group(3)


def format_tag_scope(scope: str) -> str:
    return "tags.scope:" + scope.replace("/", "\\/")


def format_tag_value(value: str) -> str:
    return "tags.tag:" + value.replace(":", "\\:")


class NSXClient:
    """NSX Policy REST client over a shared ``requests`` session."""

    def __init__(
        self,
        manager: str,
        username: str = "",
        password: str = "",
        insecure: bool = False,
        rate_limit_per_second: float = 10.0,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the NSX client.

        Args:
            manager: NSX manager base URL
            username: Basic auth user
            password: Basic auth password
            insecure: Skip TLS verification
            rate_limit_per_second: Client-side call rate
            timeout: Default per-call timeout in seconds
            session: Optional pre-configured session
        """
        self.base_url = manager.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        if username:
            self.session.auth = (username, password)
        self.session.verify = not insecure
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
        self.rate_limiter = RateLimiter(rate_limit_per_second)

    @classmethod
    def from_config(cls, config: OperatorConfig) -> NSXClient:
        return cls(
            manager=config.nsx_manager,
            username=config.nsx_username,
            password=config.nsx_password,
            insecure=config.insecure,
            rate_limit_per_second=config.nsx_rate_limit_per_second,
        )

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        ctx: ReconcileContext | None = None,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        ctx = ctx or ReconcileContext.background()
        ctx.check()
        self.rate_limiter.acquire()
        ctx.check()

        url = f"{self.base_url}{POLICY_API_PREFIX}{path}"
        started = time.monotonic()
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=body,
                timeout=ctx.timeout(self.timeout),
            )
        except requests.exceptions.RequestException as e:
            metrics.nsx_api_call_total.labels(operation=operation, result="unavailable").inc()
            raise BackendUnavailableError(
                f"NSX {operation} failed: {sanitize_error_message(str(e))}"
            ) from e
        finally:
            metrics.nsx_api_call_duration_seconds.labels(operation=operation).observe(time.monotonic() - started)

        status = response.status_code
        if status == 404:
            metrics.nsx_api_call_total.labels(operation=operation, result="not_found").inc()
            raise NotFoundError(f"NSX {operation}: {path} not found")
        if is_rate_limit_status(status) or status >= 500:
            metrics.nsx_api_call_total.labels(operation=operation, result="unavailable").inc()
            raise BackendUnavailableError(f"NSX {operation} returned {status}", status=status)
        if status >= 400:
            metrics.nsx_api_call_total.labels(operation=operation, result="rejected").inc()
            message, error_code = self._error_detail(response)
            raise NSXApiError(f"NSX {operation} returned {status}: {message}", status=status, error_code=error_code)

        metrics.nsx_api_call_total.labels(operation=operation, result="success").inc()
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_detail(response: requests.Response) -> tuple[str, int | None]:
        try:
            payload = response.json()
        except ValueError:
            return sanitize_error_message(response.text[:512]), None
        return sanitize_error_message(str(payload.get("error_message", ""))), payload.get("error_code")

    def search_by_tag(
        self,
        resource_type: str,
        tag_scope: str,
        cluster: str,
        ctx: ReconcileContext | None = None,
    ) -> list[dict[str, Any]]:
        """Page through the search API for objects owned by this cluster."""
        query = " AND ".join(
            [
                f"resource_type:{resource_type}",
                format_tag_scope(TAG_SCOPE_CLUSTER),
                format_tag_value(cluster),
                format_tag_scope(tag_scope),
                "marked_for_delete:false",
            ]
        )
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"query": query, "page_size": SEARCH_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            page = self._request("GET", "/search/query", "search", ctx, params=params)
            results.extend(page.get("results", []))
            cursor = page.get("cursor")
            if not cursor:
                break
            try:
                if int(cursor) >= int(page.get("result_count", 0)):
                    break
            except ValueError:
                pass
        logger.debug(f"Search for {resource_type} returned {len(results)} objects")
        return results

    def patch_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        body: dict[str, Any],
        ctx: ReconcileContext | None = None,
    ) -> None:
        self._request("PATCH", f"{vpc_path}/ip-address-allocations/{allocation_id}", "patch_ip_address_allocation",
                      ctx, body=body)

    def get_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        ctx: ReconcileContext | None = None,
    ) -> dict[str, Any]:
        return self._request("GET", f"{vpc_path}/ip-address-allocations/{allocation_id}", "get_ip_address_allocation",
                             ctx)

    def delete_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        ctx: ReconcileContext | None = None,
    ) -> None:
        self._request("DELETE", f"{vpc_path}/ip-address-allocations/{allocation_id}",
                      "delete_ip_address_allocation", ctx)

    def list_realized_entities(
        self,
        intent_path: str,
        ctx: ReconcileContext | None = None,
    ) -> list[dict[str, Any]]:
        org, project, _ = parse_vpc_path(intent_path)
        page = self._request(
            "GET",
            f"/orgs/{org}/projects/{project}/infra/realized-state/realized-entities",
            "list_realized_entities",
            ctx,
            params={"intent_path": intent_path},
        )
        return page.get("results", [])
