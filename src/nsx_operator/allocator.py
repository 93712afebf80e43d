"""IP/CIDR pool allocator.

Pools are named lists of CIDR blocks. Each owner (a CR UID) holds at most one
allocation per pool; allocations within a pool never overlap. Allocation is
idempotent per owner so that a reconcile retried after a crash gets back the
range it already holds instead of leaking a new one.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Union

from .utils.errors import (
    AllocationConflictError,
    InvalidAllocationRequest,
    PoolExhaustedError,
)

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def parse_allocation_ips(value: str) -> IPNetwork:
    """Parse an explicit allocation. A bare IP becomes a host network.

    Raises:
        ValueError: if the value is neither an IP nor a CIDR without host bits
    """
    value = value.strip()
    if "/" in value:
        return ipaddress.ip_network(value, strict=True)
    address = ipaddress.ip_address(value)
    return ipaddress.ip_network((address, address.max_prefixlen))


def is_single_ip(value: str) -> bool:
    """True for a bare IP or a host-prefix CIDR (/32 or /128)."""
    try:
        network = parse_allocation_ips(value)
    except ValueError:
        return False
    return network.num_addresses == 1


def ip_in_range(ip: str, ip_range: str) -> bool:
    """Whether ``ip`` equals ``ip_range`` or lies inside it when it is a CIDR.

    Unparsable input is never in range.
    """
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    ip_range = ip_range.strip()
    if "/" in ip_range:
        try:
            network = ipaddress.ip_network(ip_range, strict=False)
        except ValueError:
            return False
        return address.version == network.version and address in network
    try:
        return address == ipaddress.ip_address(ip_range)
    except ValueError:
        return False


@dataclass(frozen=True)
class AllocationRecord:
    pool: str
    cidr: str
    owner: str


class IPPool:
    """A named set of CIDR blocks."""

    def __init__(self, name: str, cidrs: Iterable[str]) -> None:
        self.name = name
        self.blocks: list[IPNetwork] = [ipaddress.ip_network(c, strict=True) for c in cidrs]

    def contains(self, network: IPNetwork) -> bool:
        return any(
            block.version == network.version and network.subnet_of(block)  # type: ignore[arg-type]
            for block in self.blocks
        )

    def __repr__(self) -> str:
        return f"IPPool({self.name!r}, {[str(b) for b in self.blocks]!r})"


def _overlaps(left: IPNetwork, right: IPNetwork) -> bool:
    return left.version == right.version and left.overlaps(right)  # type: ignore[arg-type]


def _first_free(block: IPNetwork, prefix: int, taken: list[IPNetwork]) -> IPNetwork | None:
    """Lowest aligned subnet of ``block`` with ``prefix`` not overlapping ``taken``."""
    size = 1 << (block.max_prefixlen - prefix)
    end = int(block.broadcast_address)
    candidate = int(block.network_address)
    taken = [t for t in taken if t.version == block.version]
    while candidate + size - 1 <= end:
        candidate_end = candidate + size - 1
        blocker = None
        for t in taken:
            if int(t.network_address) <= candidate_end and int(t.broadcast_address) >= candidate:
                blocker = t
                break
        if blocker is None:
            return type(block)((candidate, prefix))
        nxt = int(blocker.broadcast_address) + 1
        candidate = ((nxt + size - 1) // size) * size
    return None


class IPAllocator:
    """Hands out non-overlapping CIDRs from named pools."""

    def __init__(self, pools: dict[str, Iterable[str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._pools: dict[str, IPPool] = {}
        self._records: dict[str, dict[str, IPNetwork]] = {}
        for name, cidrs in (pools or {}).items():
            self.add_pool(name, cidrs)

    def add_pool(self, name: str, cidrs: Iterable[str]) -> None:
        pool = IPPool(name, cidrs)
        with self._lock:
            self._pools[name] = pool
            self._records.setdefault(name, {})

    def has_pool(self, name: str) -> bool:
        with self._lock:
            pool = self._pools.get(name)
            return pool is not None and bool(pool.blocks)

    def pools(self) -> list[str]:
        with self._lock:
            return sorted(self._pools)

    def _pool(self, name: str) -> IPPool:
        pool = self._pools.get(name)
        if pool is None:
            raise InvalidAllocationRequest(f"IP pool {name} is not configured")
        return pool

    def allocate(self, pool: str, owner: str, size: int | None = None, cidr: str | None = None) -> str:
        """Allocate a CIDR for ``owner`` by size or by explicit CIDR/IP.

        Raises:
            InvalidAllocationRequest: malformed request or unknown pool
            AllocationConflictError: the owner already holds a different range,
                or the explicit range overlaps another owner
            PoolExhaustedError: no free aligned block of the requested size
        """
        if (size is None) == (cidr is None):
            raise InvalidAllocationRequest("exactly one of allocation size or allocation IPs must be set")

        requested: IPNetwork | None = None
        if cidr is not None:
            try:
                requested = parse_allocation_ips(cidr)
            except ValueError as e:
                raise InvalidAllocationRequest(f"invalid allocation IPs {cidr}: {e}") from e
        elif not is_power_of_two(size):  # type: ignore[arg-type]
            raise InvalidAllocationRequest(f"allocation size {size} must be a power of two")

        with self._lock:
            ip_pool = self._pool(pool)
            held = self._records[pool]
            current = held.get(owner)
            if current is not None:
                if (requested is not None and current == requested) or (
                    requested is None and current.num_addresses == size
                ):
                    return str(current)
                raise AllocationConflictError(
                    f"{owner} already holds {current} in pool {pool}, cannot allocate {cidr or size}"
                )

            others = [net for o, net in held.items() if o != owner]
            if requested is not None:
                if not ip_pool.contains(requested):
                    raise InvalidAllocationRequest(f"{requested} is outside of pool {pool}")
                for o, net in held.items():
                    if _overlaps(net, requested):
                        raise AllocationConflictError(f"{requested} overlaps {net} allocated to {o}")
                held[owner] = requested
                logger.info(f"Allocated {requested} in pool {pool} to {owner}")
                return str(requested)

            for block in ip_pool.blocks:
                if size > block.num_addresses:  # type: ignore[operator]
                    continue
                prefix = block.max_prefixlen - (size.bit_length() - 1)  # type: ignore[union-attr]
                found = _first_free(block, prefix, others)
                if found is not None:
                    held[owner] = found
                    logger.info(f"Allocated {found} in pool {pool} to {owner}")
                    return str(found)
            raise PoolExhaustedError(f"no free block of size {size} in pool {pool}")

    def release(self, pool: str, owner: str, cidr: str | None = None) -> str | None:
        """Release the allocation held by ``owner``; a no-op when none is held.

        When ``cidr`` is given and does not match the owner's record, nothing is
        released, so a stale UID can never free a range another CR now uses.
        """
        with self._lock:
            held = self._records.get(pool)
            if not held or owner not in held:
                return None
            current = held[owner]
            if cidr is not None:
                try:
                    expected = parse_allocation_ips(cidr)
                except ValueError:
                    return None
                if expected != current:
                    logger.warning(f"Not releasing {cidr} for {owner}: pool {pool} records {current}")
                    return None
            del held[owner]
            logger.info(f"Released {current} in pool {pool} from {owner}")
            return str(current)

    def restore(self, pool: str, owner: str, cidr: str) -> None:
        """Re-seed a record from backend state after a restart."""
        network = parse_allocation_ips(cidr)
        with self._lock:
            held = self._records.setdefault(pool, {})
            for o, net in held.items():
                if o != owner and _overlaps(net, network):
                    raise AllocationConflictError(f"{network} overlaps {net} allocated to {o}")
            held[owner] = network

    def get(self, pool: str, owner: str) -> str | None:
        with self._lock:
            net = self._records.get(pool, {}).get(owner)
            return str(net) if net is not None else None

    def records(self, pool: str) -> list[AllocationRecord]:
        with self._lock:
            return [
                AllocationRecord(pool=pool, cidr=str(net), owner=owner)
                for owner, net in sorted(self._records.get(pool, {}).items())
            ]
