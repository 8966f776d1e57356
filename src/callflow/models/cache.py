"""Cache statistics and health models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field


@dataclass
class CacheMetrics:
    """Cumulative counters for one cache concern.

    Lives as long as the owning orchestrator, which is constructed once per
    process, so the counters only reset on restart.
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_requests: int = 0
    average_response_time_ms: float = 0.0
    cache_size: int = 0

    def record_response_time(self, elapsed_ms: float) -> None:
        """Fold one response time into the running average."""
        if self.total_requests <= 0:
            return
        total = self.average_response_time_ms * (self.total_requests - 1)
        self.average_response_time_ms = (total + elapsed_ms) / self.total_requests

    def snapshot(self) -> CacheMetricsSnapshot:
        hit_rate = self.hits / self.total_requests if self.total_requests else 0.0
        miss_rate = self.misses / self.total_requests if self.total_requests else 0.0
        return CacheMetricsSnapshot(
            hits=self.hits,
            misses=self.misses,
            evictions=self.evictions,
            total_requests=self.total_requests,
            average_response_time_ms=round(self.average_response_time_ms, 3),
            cache_size=max(self.cache_size, 0),
            hit_rate=round(hit_rate, 2),
            miss_rate=round(miss_rate, 2),
        )


class CacheMetricsSnapshot(BaseModel):
    hits: int
    misses: int
    evictions: int
    total_requests: int
    average_response_time_ms: float
    cache_size: int
    hit_rate: float
    miss_rate: float


class BusinessCacheStats(BaseModel):
    """Key counts for one business context."""

    business_context_id: str
    cached_combinations: int = 0
    cached_triggers: int = 0
    cached_evaluations: int = 0
    average_evaluation_time_ms: float = 0.0


class CacheStats(BaseModel):
    combinations: CacheMetricsSnapshot
    trigger_definitions: CacheMetricsSnapshot
    trigger_evaluations: CacheMetricsSnapshot
    business: BusinessCacheStats | None = None
    redis: dict[str, int] = Field(default_factory=dict)
    degraded: bool = False


class InvalidationReport(BaseModel):
    business_context_id: str
    combinations: int = 0
    triggers: int = 0
    evaluations: int = 0
    degraded: bool = False
    reason: str | None = None

    @property
    def total(self) -> int:
        return self.combinations + self.triggers + self.evaluations


class HealthReport(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency_ms: float | None = None
    details: dict[str, Any] = Field(default_factory=dict)
