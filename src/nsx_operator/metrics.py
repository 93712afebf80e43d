"""Prometheus metrics for the NSX Operator."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Histogram

if TYPE_CHECKING:
    from .config import OperatorConfig

# Controller metrics, one counter per {res_type x operation x outcome}
controller_sync_total = Counter(
    "nsx_operator_controller_sync_total",
    "Total number of reconciliations started",
    ["res_type"],
)

controller_update_total = Counter(
    "nsx_operator_controller_update_total",
    "Total number of create or update reconciliations",
    ["res_type"],
)

controller_update_success_total = Counter(
    "nsx_operator_controller_update_success_total",
    "Total number of successful create or update reconciliations",
    ["res_type"],
)

controller_update_fail_total = Counter(
    "nsx_operator_controller_update_fail_total",
    "Total number of failed create or update reconciliations",
    ["res_type"],
)

controller_delete_total = Counter(
    "nsx_operator_controller_delete_total",
    "Total number of delete reconciliations",
    ["res_type"],
)

controller_delete_success_total = Counter(
    "nsx_operator_controller_delete_success_total",
    "Total number of successful delete reconciliations",
    ["res_type"],
)

controller_delete_fail_total = Counter(
    "nsx_operator_controller_delete_fail_total",
    "Total number of failed delete reconciliations",
    ["res_type"],
)

reconcile_duration_seconds = Histogram(
    "nsx_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["res_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Garbage collection metrics
gc_orphans_total = Counter(
    "nsx_operator_gc_orphans_total",
    "Orphaned NSX objects processed by the garbage collector",
    ["res_type", "result"],
)

# Admission metrics
admission_total = Counter(
    "nsx_operator_admission_total",
    "Total number of admission reviews",
    ["kind", "operation", "result"],
)

# Realization metrics
realization_total = Counter(
    "nsx_operator_realization_total",
    "Realization checks by outcome",
    ["entity_type", "result"],
)

# NSX API call metrics
nsx_api_call_total = Counter(
    "nsx_operator_nsx_api_call_total",
    "Total number of NSX API calls",
    ["operation", "result"],
)

nsx_api_call_duration_seconds = Histogram(
    "nsx_operator_nsx_api_call_duration_seconds",
    "Duration of NSX API calls in seconds",
    ["operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)


def counter_inc(config: OperatorConfig | None, counter: Counter, res_type: str) -> None:
    """Increment a controller counter unless metrics are disabled."""
    if config is not None and not config.metrics_enabled:
        return
    counter.labels(res_type=res_type).inc()
