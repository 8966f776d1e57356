"""Tests for Prometheus metrics and cache counters."""

from callflow.models.cache import CacheMetrics
from callflow.observability.metrics import MetricsRegistry, NoOpMetric


class TestMetricsRegistry:
    """Tests for the metrics registry."""

    def test_counters_exported(self) -> None:
        """Incremented counters appear in the exposition output."""
        metrics = MetricsRegistry(enabled=True)
        metrics.cache_hits_total.labels(cache_type="combinations").inc()
        metrics.cache_operation_duration_seconds.labels(cache_type="combinations").observe(0.002)

        output = metrics.generate_latest().decode()

        assert 'callflow_cache_hits_total{cache_type="combinations"} 1.0' in output
        assert "callflow_cache_operation_duration_seconds_bucket" in output

    def test_registries_are_independent(self) -> None:
        """Two registries never share samples."""
        first = MetricsRegistry(enabled=True)
        second = MetricsRegistry(enabled=True)
        first.cache_misses_total.labels(cache_type="trigger_eval").inc(3)

        assert "callflow_cache_misses_total{" not in second.generate_latest().decode()

    def test_disabled(self) -> None:
        """Disabled metrics are no-ops."""
        metrics = MetricsRegistry(enabled=False)

        assert isinstance(metrics.cache_hits_total, NoOpMetric)
        metrics.cache_degraded_total.labels(cache_type="x", operation="get").inc()
        metrics.cache_operation_duration_seconds.labels(cache_type="x").observe(1.0)
        assert metrics.generate_latest() == b"# Metrics disabled\n"


class TestCacheMetrics:
    """Tests for cumulative per-concern counters."""

    def test_running_average(self) -> None:
        """Response time is a running mean over all requests."""
        stats = CacheMetrics()
        for elapsed in (10.0, 20.0, 30.0):
            stats.total_requests += 1
            stats.record_response_time(elapsed)

        assert stats.average_response_time_ms == 20.0

    def test_snapshot_rates(self) -> None:
        """Hit and miss rates are rounded to two decimals."""
        stats = CacheMetrics(hits=1, misses=2, total_requests=3, cache_size=-1)

        snapshot = stats.snapshot()

        assert snapshot.hit_rate == 0.33
        assert snapshot.miss_rate == 0.67
        assert snapshot.cache_size == 0

    def test_empty_snapshot(self) -> None:
        """No requests means zero rates."""
        snapshot = CacheMetrics().snapshot()

        assert (snapshot.hit_rate, snapshot.miss_rate) == (0.0, 0.0)
