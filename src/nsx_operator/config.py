"""Operator configuration loaded from the environment."""

from __future__ import annotations

import ipaddress
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .utils.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER = "k8scl-one"
DEFAULT_NSX_MANAGER = "https://localhost"
DEFAULT_MAX_CONCURRENT_RECONCILES = 8
DEFAULT_GC_INTERVAL_SECONDS = 600
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 120
DEFAULT_REALIZE_STEPS = 6
DEFAULT_REALIZE_INTERVAL_SECONDS = 1.0
DEFAULT_REALIZE_FACTOR = 2.0
DEFAULT_REALIZE_TIMEOUT_SECONDS = 60.0
DEFAULT_NETWORK_MODE_CACHE_TTL_SECONDS = 30.0
DEFAULT_ADMISSION_LIST_TIMEOUT_SECONDS = 5.0
DEFAULT_NSX_RATE_LIMIT_PER_SECOND = 10.0
DEFAULT_METRICS_PORT = 8080
DEFAULT_WEBHOOK_PORT = 9443


def _get_bool(value: str) -> bool:
    return str(value).lower() in ("true", "1", "t", "yes")


def _get_cidrs(value: str) -> tuple[str, ...]:
    cidrs = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        cidrs.append(str(ipaddress.ip_network(item, strict=True)))
    return tuple(cidrs)


@dataclass(frozen=True)
class OperatorConfig:
    """Immutable operator settings, passed explicitly to every component."""

    cluster: str = DEFAULT_CLUSTER
    nsx_manager: str = DEFAULT_NSX_MANAGER
    nsx_username: str = ""
    nsx_password: str = field(default="", repr=False)
    insecure: bool = False
    org: str = "default"
    project: str = "default"
    vpc: str = "default"
    external_ip_blocks: tuple[str, ...] = ()
    private_ip_blocks: tuple[str, ...] = ()
    max_concurrent_reconciles: int = DEFAULT_MAX_CONCURRENT_RECONCILES
    gc_interval_seconds: float = DEFAULT_GC_INTERVAL_SECONDS
    reconcile_timeout_seconds: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS
    realize_steps: int = DEFAULT_REALIZE_STEPS
    realize_interval_seconds: float = DEFAULT_REALIZE_INTERVAL_SECONDS
    realize_factor: float = DEFAULT_REALIZE_FACTOR
    realize_timeout_seconds: float = DEFAULT_REALIZE_TIMEOUT_SECONDS
    network_mode_cache_ttl_seconds: float = DEFAULT_NETWORK_MODE_CACHE_TTL_SECONDS
    admission_list_timeout_seconds: float = DEFAULT_ADMISSION_LIST_TIMEOUT_SECONDS
    nsx_rate_limit_per_second: float = DEFAULT_NSX_RATE_LIMIT_PER_SECOND
    metrics_port: int = DEFAULT_METRICS_PORT
    metrics_enabled: bool = True
    webhook_port: int = DEFAULT_WEBHOOK_PORT
    webhook_cert: str | None = None
    webhook_key: str | None = None

    @property
    def vpc_path(self) -> str:
        return f"/orgs/{self.org}/projects/{self.project}/vpcs/{self.vpc}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OperatorConfig:
        """Build the configuration from environment variables.

        Raises:
            ConfigError: if a value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ

        def get(key: str, default: Any, caster: Callable[[str], Any] | None = None) -> Any:
            raw = env.get(key)
            if raw is None or raw == "":
                return default
            if caster is None:
                return raw
            try:
                return caster(raw)
            except ValueError as e:
                raise ConfigError(f"invalid value for {key}: {raw!r} ({e})") from e

        config = cls(
            cluster=get("NSX_CLUSTER", DEFAULT_CLUSTER),
            nsx_manager=get("NSX_MANAGER", DEFAULT_NSX_MANAGER),
            nsx_username=get("NSX_USERNAME", ""),
            nsx_password=get("NSX_PASSWORD", ""),
            insecure=get("NSX_INSECURE", False, _get_bool),
            org=get("NSX_ORG", "default"),
            project=get("NSX_PROJECT", "default"),
            vpc=get("NSX_VPC", "default"),
            external_ip_blocks=get("EXTERNAL_IP_BLOCKS", (), _get_cidrs),
            private_ip_blocks=get("PRIVATE_IP_BLOCKS", (), _get_cidrs),
            max_concurrent_reconciles=get("MAX_CONCURRENT_RECONCILES", DEFAULT_MAX_CONCURRENT_RECONCILES, int),
            gc_interval_seconds=get("GC_INTERVAL_SECONDS", DEFAULT_GC_INTERVAL_SECONDS, float),
            reconcile_timeout_seconds=get("RECONCILE_TIMEOUT_SECONDS", DEFAULT_RECONCILE_TIMEOUT_SECONDS, float),
            realize_steps=get("REALIZE_STEPS", DEFAULT_REALIZE_STEPS, int),
            realize_interval_seconds=get("REALIZE_INTERVAL_SECONDS", DEFAULT_REALIZE_INTERVAL_SECONDS, float),
            realize_factor=get("REALIZE_FACTOR", DEFAULT_REALIZE_FACTOR, float),
            realize_timeout_seconds=get("REALIZE_TIMEOUT_SECONDS", DEFAULT_REALIZE_TIMEOUT_SECONDS, float),
            network_mode_cache_ttl_seconds=get(
                "NETWORK_MODE_CACHE_TTL_SECONDS", DEFAULT_NETWORK_MODE_CACHE_TTL_SECONDS, float
            ),
            admission_list_timeout_seconds=get(
                "ADMISSION_LIST_TIMEOUT_SECONDS", DEFAULT_ADMISSION_LIST_TIMEOUT_SECONDS, float
            ),
            nsx_rate_limit_per_second=get("NSX_RATE_LIMIT_PER_SECOND", DEFAULT_NSX_RATE_LIMIT_PER_SECOND, float),
            metrics_port=get("METRICS_PORT", DEFAULT_METRICS_PORT, int),
            metrics_enabled=get("METRICS_ENABLED", True, _get_bool),
            webhook_port=get("WEBHOOK_PORT", DEFAULT_WEBHOOK_PORT, int),
            webhook_cert=get("WEBHOOK_CERT", None),
            webhook_key=get("WEBHOOK_KEY", None),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.max_concurrent_reconciles < 1:
            raise ConfigError("MAX_CONCURRENT_RECONCILES must be at least 1")
        if self.gc_interval_seconds <= 0:
            raise ConfigError("GC_INTERVAL_SECONDS must be positive")
        if self.realize_steps < 1:
            raise ConfigError("REALIZE_STEPS must be at least 1")
        if self.realize_factor < 1.0:
            raise ConfigError("REALIZE_FACTOR must be at least 1.0")
        if self.nsx_rate_limit_per_second <= 0:
            raise ConfigError("NSX_RATE_LIMIT_PER_SECOND must be positive")
        if bool(self.webhook_cert) != bool(self.webhook_key):
            raise ConfigError("WEBHOOK_CERT and WEBHOOK_KEY must be set together")
