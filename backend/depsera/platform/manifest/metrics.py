"""Prometheus metrics for manifest sync."""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Custom registry for manifest sync metrics
# (separate from any other Prometheus metrics in the process)
manifest_registry = CollectorRegistry()

# Completed runs by terminal status and trigger
sync_runs_total = Counter(
    "depsera_manifest_sync_runs_total",
    "Manifest sync runs by terminal status and trigger type",
    ["status", "trigger"],
    registry=manifest_registry,
)

# Requests turned away before a run started
sync_rejections_total = Counter(
    "depsera_manifest_sync_rejections_total",
    "Sync requests rejected before running (already_running, disabled, cooldown)",
    ["reason"],
    registry=manifest_registry,
)

sync_duration_seconds = Histogram(
    "depsera_manifest_sync_duration_seconds",
    "Wall-clock duration of manifest sync runs",
    ["trigger"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=manifest_registry,
)

drift_flags_raised_total = Counter(
    "depsera_manifest_drift_flags_raised_total",
    "Pending drift flags raised or reopened by sync runs",
    registry=manifest_registry,
)

item_errors_total = Counter(
    "depsera_manifest_item_errors_total",
    "Items that failed to apply, by resource kind",
    ["kind"],
    registry=manifest_registry,
)

host_limit_rejections_total = Counter(
    "depsera_manifest_host_limit_rejections_total",
    "Manifest fetches rejected by the per-host concurrency limit",
    registry=manifest_registry,
)

active_syncs = Gauge(
    "depsera_manifest_active_syncs",
    "Number of manifest sync runs currently executing",
    registry=manifest_registry,
)


def get_prometheus_metrics() -> bytes:
    """Generate Prometheus metrics in text format.

    Returns:
        Metrics data in Prometheus text exposition format
    """
    return generate_latest(manifest_registry)
