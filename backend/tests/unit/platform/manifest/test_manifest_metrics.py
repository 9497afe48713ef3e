"""Tests for manifest sync Prometheus metrics."""

from depsera.platform.manifest import metrics


def test_metrics_use_custom_registry():
    """Test that manifest metrics are exported from their own registry."""
    metrics.sync_rejections_total.labels(reason="disabled").inc()

    output = metrics.get_prometheus_metrics().decode()

    assert "depsera_manifest_sync_rejections_total" in output
    assert 'reason="disabled"' in output
    assert "depsera_manifest_active_syncs" in output
    assert "depsera_manifest_host_limit_rejections_total" in output


def test_duration_histogram_is_labelled_by_trigger():
    """Test that durations are observed per trigger type."""
    before = (
        metrics.manifest_registry.get_sample_value(
            "depsera_manifest_sync_duration_seconds_count", {"trigger": "scheduled"}
        )
        or 0
    )

    metrics.sync_duration_seconds.labels(trigger="scheduled").observe(0.3)

    after = metrics.manifest_registry.get_sample_value(
        "depsera_manifest_sync_duration_seconds_count", {"trigger": "scheduled"}
    )
    assert after == before + 1
