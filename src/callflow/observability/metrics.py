"""Prometheus metrics for the callflow engine.

Provides metrics collection and exposure:
- Cache metrics (hits, misses, evictions, degraded operations, latency)
- Trigger evaluation outcomes

Each engine owns one MetricsRegistry backed by its own CollectorRegistry, so
several engines (e.g. in tests) never collide on metric names.

Usage:
    metrics = MetricsRegistry()
    metrics.cache_hits_total.labels(cache_type="combinations").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> NoOpMetric:
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""

    def observe(self, amount: float) -> None:
        """No-op."""


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    enabled: bool = True

    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_evictions_total: Any = None
    cache_degraded_total: Any = None
    cache_operation_duration_seconds: Any = None
    trigger_evaluations_total: Any = None

    _registry: CollectorRegistry | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.enabled:
            noop = NoOpMetric()
            self.cache_hits_total = noop
            self.cache_misses_total = noop
            self.cache_evictions_total = noop
            self.cache_degraded_total = noop
            self.cache_operation_duration_seconds = noop
            self.trigger_evaluations_total = noop
            logger.info("Metrics are disabled")
            return

        self._registry = CollectorRegistry()

        self.cache_hits_total = Counter(
            "callflow_cache_hits_total",
            "Cache hits",
            ["cache_type"],
            registry=self._registry,
        )

        self.cache_misses_total = Counter(
            "callflow_cache_misses_total",
            "Cache misses",
            ["cache_type"],
            registry=self._registry,
        )

        self.cache_evictions_total = Counter(
            "callflow_cache_evictions_total",
            "Entries evicted to keep a cache concern under its size bound",
            ["cache_type"],
            registry=self._registry,
        )

        self.cache_degraded_total = Counter(
            "callflow_cache_degraded_total",
            "Cache operations that fell back to running without the cache",
            ["cache_type", "operation"],
            registry=self._registry,
        )

        self.cache_operation_duration_seconds = Histogram(
            "callflow_cache_operation_duration_seconds",
            "get-or-compute latency in seconds",
            ["cache_type"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            registry=self._registry,
        )

        self.trigger_evaluations_total = Counter(
            "callflow_trigger_evaluations_total",
            "Trigger evaluations by outcome",
            ["outcome"],
            registry=self._registry,
        )

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)
