"""Tests for the engine facade: stats, health and lifecycle."""

import pytest

from callflow.cache.redis import RedisCache
from callflow.config import Settings
from callflow.engine import CallflowEngine
from callflow.observability.metrics import MetricsRegistry
from callflow.records import InMemoryRecordStore
from tests.fakes import FakeClock, FakeRedis


def request(business: str = "acme") -> dict[str, object]:
    return {
        "business_context_id": business,
        "max_duration_seconds": 60,
        "available_questions": ["q1", "q2", "q3"],
    }


class TestCacheStats:
    """Tests for cache statistics."""

    @pytest.mark.asyncio
    async def test_counters_and_redis_info(self, engine: CallflowEngine) -> None:
        """Stats report per-concern counters and Redis keyspace info."""
        await engine.get_optimized_combination(request())
        await engine.get_optimized_combination(request())

        stats = await engine.get_cache_stats()

        assert stats.combinations.total_requests == 2
        assert stats.combinations.hits == 1
        assert stats.combinations.misses == 1
        assert stats.combinations.hit_rate == 0.5
        assert stats.combinations.miss_rate == 0.5
        assert stats.trigger_evaluations.total_requests == 0
        assert stats.redis == {"keyspace_hits": 7, "keyspace_misses": 3, "total_keys": 1}
        assert stats.business is None
        assert not stats.degraded

    @pytest.mark.asyncio
    async def test_business_counts(self, engine: CallflowEngine) -> None:
        """Per-business counts only include that business."""
        await engine.get_optimized_combination(request("acme"))
        await engine.get_optimized_combination(request("globex"))

        stats = await engine.get_cache_stats("acme")

        assert stats.business is not None
        assert stats.business.business_context_id == "acme"
        assert stats.business.cached_combinations == 1

    @pytest.mark.asyncio
    async def test_stats_with_cache_down(
        self, engine: CallflowEngine, fake_redis: FakeRedis
    ) -> None:
        """Stats are still returned when Redis is unreachable."""
        fake_redis.fail = True

        stats = await engine.get_cache_stats("acme")

        assert stats.degraded
        assert stats.redis == {}
        assert stats.business is not None
        assert stats.business.cached_combinations == 0


class TestHealthCheck:
    """Tests for the health check."""

    @pytest.mark.asyncio
    async def test_healthy(self, engine: CallflowEngine) -> None:
        """A reachable cache reports latency, memory and metrics."""
        report = await engine.health_check()

        assert report.status == "healthy"
        assert report.latency_ms is not None and report.latency_ms >= 0
        assert report.details["connected"] is True
        assert report.details["memory"] == {"used": "1.00M", "peak": "2.00M"}
        assert set(report.details["metrics"]) == {
            "combinations",
            "trigger_definitions",
            "trigger_evaluations",
        }

    @pytest.mark.asyncio
    async def test_unhealthy(self, engine: CallflowEngine, fake_redis: FakeRedis) -> None:
        """An unreachable cache reports the error."""
        fake_redis.fail = True

        report = await engine.health_check()

        assert report.status == "unhealthy"
        assert report.latency_ms is None
        assert report.details["connected"] is False
        assert "Connection refused" in report.details["error"]


class TestLifecycle:
    """Tests for construction and shutdown."""

    @pytest.mark.asyncio
    async def test_context_manager_closes(
        self, store: RedisCache, records: InMemoryRecordStore, fake_redis: FakeRedis
    ) -> None:
        """Leaving the context closes the Redis client."""
        async with CallflowEngine(store, records) as engine:
            await engine.health_check()

        assert fake_redis.closed

    @pytest.mark.asyncio
    async def test_close_tolerates_dead_cache(
        self, engine: CallflowEngine, fake_redis: FakeRedis
    ) -> None:
        """Closing never raises on an unreachable cache."""
        fake_redis.fail = True

        await engine.close()

    def test_settings_applied(
        self,
        store: RedisCache,
        records: InMemoryRecordStore,
        metrics: MetricsRegistry,
        clock: FakeClock,
    ) -> None:
        """TTLs, bounds and the key namespace come from settings."""
        settings = Settings(
            redis_key_namespace="staging",
            combination_cache_ttl=120,
            trigger_eval_max_entries=50,
            single_flight=False,
        )

        engine = CallflowEngine(store, records, settings=settings, metrics=metrics, clock=clock)

        assert engine.combinations.ttl == 120
        assert engine.evaluation_cache.max_entries == 50
        assert engine.combination_cache.scope_prefix == "staging:combinations:"
        assert engine.combination_cache.single_flight is False
        assert engine.triggers.records is None

    def test_from_settings_uses_records_for_triggers(self, records: InMemoryRecordStore) -> None:
        """A record store implementing both protocols serves triggers too."""
        engine = CallflowEngine.from_settings(Settings(), records)

        assert engine.triggers.records is records
        assert engine.combinations.records is records
