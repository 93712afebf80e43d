"""Base NSX provider interface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ...utils.context import ReconcileContext


class NSXProvider(Protocol):
    """Protocol defining the NSX Policy API operations the operator uses."""

    def search_by_tag(
        self,
        resource_type: str,
        tag_scope: str,
        cluster: str,
        ctx: ReconcileContext | None = None,
    ) -> list[dict[str, Any]]:
        """List every object of a type carrying the tag scope for the cluster."""
        ...

    def patch_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        body: dict[str, Any],
        ctx: ReconcileContext | None = None,
    ) -> None:
        """Create or update a VPC IP address allocation."""
        ...

    def get_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        ctx: ReconcileContext | None = None,
    ) -> dict[str, Any]:
        """Get a VPC IP address allocation."""
        ...

    def delete_ip_address_allocation(
        self,
        vpc_path: str,
        allocation_id: str,
        ctx: ReconcileContext | None = None,
    ) -> None:
        """Delete a VPC IP address allocation."""
        ...

    def list_realized_entities(
        self,
        intent_path: str,
        ctx: ReconcileContext | None = None,
    ) -> list[dict[str, Any]]:
        """List realized entities of an intent path."""
        ...
