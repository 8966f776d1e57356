"""Engine facade and service container.

CallflowEngine wires the Redis store, the three cache orchestrators and the two
services together once at process start. Consumers receive the engine (or a
service) by reference; close() releases the Redis connection pool.

Example:
    async with CallflowEngine.from_settings(settings, records) as engine:
        combination = await engine.get_optimized_combination(request)
        results = await engine.evaluate_triggers_from_cache("acme", data, ["t1"])
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any

from callflow.cache.keys import CacheKeys
from callflow.cache.orchestrator import CacheOrchestrator
from callflow.cache.redis import RedisCache, create_redis_client
from callflow.cache.result import CacheResult, Degraded
from callflow.config import Settings
from callflow.errors import CacheUnavailableError
from callflow.models.cache import CacheStats, HealthReport, InvalidationReport
from callflow.models.questions import CombinationRequest, OptimizedCombination, PreWarmScenario
from callflow.models.triggers import (
    CachedEvaluation,
    DynamicTrigger,
    TriggerCacheEntry,
    TriggerCondition,
    TriggerEvaluationResult,
)
from callflow.observability.metrics import MetricsRegistry
from callflow.records import QuestionRecordStore, TriggerRecordStore
from callflow.services.combinations import CombinationCacheService
from callflow.services.triggers import TriggerCacheService

logger = logging.getLogger(__name__)


class CallflowEngine:
    """Combination optimization and trigger evaluation behind a shared cache."""

    def __init__(
        self,
        store: RedisCache,
        questions: QuestionRecordStore,
        triggers: TriggerRecordStore | None = None,
        *,
        settings: Settings | None = None,
        metrics: MetricsRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or Settings()
        self.store = store
        self.metrics = metrics or MetricsRegistry(enabled=self.settings.enable_metrics)
        self.keys = CacheKeys(self.settings.redis_key_namespace)

        common: dict[str, Any] = {
            "metrics": self.metrics,
            "eviction_fraction": self.settings.eviction_fraction,
            "single_flight": self.settings.single_flight,
            "clock": clock,
        }
        self.combination_cache: CacheOrchestrator[OptimizedCombination] = CacheOrchestrator(
            store,
            OptimizedCombination,
            name=CacheKeys.COMBINATIONS,
            scope_prefix=self.keys.concern_prefix(CacheKeys.COMBINATIONS),
            max_entries=self.settings.combination_cache_max_entries,
            **common,
        )
        self.trigger_cache: CacheOrchestrator[TriggerCacheEntry] = CacheOrchestrator(
            store,
            TriggerCacheEntry,
            name=CacheKeys.TRIGGER_DEFS,
            scope_prefix=self.keys.concern_prefix(CacheKeys.TRIGGER_DEFS),
            max_entries=self.settings.trigger_cache_max_entries,
            **common,
        )
        self.evaluation_cache: CacheOrchestrator[CachedEvaluation] = CacheOrchestrator(
            store,
            CachedEvaluation,
            name=CacheKeys.TRIGGER_EVAL,
            scope_prefix=self.keys.concern_prefix(CacheKeys.TRIGGER_EVAL),
            max_entries=self.settings.trigger_eval_max_entries,
            **common,
        )

        self.combinations = CombinationCacheService(
            self.combination_cache,
            self.keys,
            questions,
            ttl=self.settings.combination_cache_ttl,
            max_questions=self.settings.combination_max_questions,
            clock=clock,
        )
        self.triggers = TriggerCacheService(
            self.trigger_cache,
            self.evaluation_cache,
            self.keys,
            self.metrics,
            triggers,
            definition_ttl=self.settings.trigger_cache_ttl,
            evaluation_ttl=self.settings.trigger_eval_ttl,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        records: QuestionRecordStore,
        triggers: TriggerRecordStore | None = None,
    ) -> CallflowEngine:
        """Build an engine with a Redis client configured from settings.

        When ``records`` also implements the trigger protocol it serves both.
        """
        if triggers is None and isinstance(records, TriggerRecordStore):
            triggers = records
        store = RedisCache(create_redis_client(settings))
        return cls(store, records, triggers, settings=settings)

    async def __aenter__(self) -> CallflowEngine:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the Redis connection pool."""
        try:
            await self.store.close()
        except CacheUnavailableError as exc:
            logger.warning("Error closing cache connection: %s", exc)
        logger.info("Callflow engine shut down")

    # -------------------------------------------------------------------------
    # Combinations
    # -------------------------------------------------------------------------

    async def get_optimized_combination_result(
        self, request: CombinationRequest | dict[str, Any]
    ) -> CacheResult[OptimizedCombination]:
        return await self.combinations.get_optimized_combination(request)

    async def get_optimized_combination(
        self, request: CombinationRequest | dict[str, Any]
    ) -> OptimizedCombination:
        """Optimized combination for a request, from cache when possible.

        Raises:
            InvalidRequestError: If the request fails validation
        """
        result = await self.combinations.get_optimized_combination(request)
        if isinstance(result, Degraded):
            logger.info("Combination served without cache: %s", result.reason)
        return result.value

    async def pre_warm_combinations(
        self, business_context_id: str, scenarios: Sequence[PreWarmScenario | dict[str, Any]]
    ) -> int:
        return await self.combinations.pre_warm(business_context_id, scenarios)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def cache_trigger(
        self,
        business_context_id: str,
        trigger: DynamicTrigger,
        conditions: Sequence[TriggerCondition],
    ) -> CacheResult[TriggerCacheEntry]:
        return await self.triggers.cache_trigger(business_context_id, trigger, conditions)

    async def load_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> CacheResult[TriggerCacheEntry] | None:
        return await self.triggers.load_trigger(business_context_id, trigger_id)

    async def get_cached_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> TriggerCacheEntry | None:
        return await self.triggers.get_cached_trigger(business_context_id, trigger_id)

    async def get_cached_evaluation(
        self, business_context_id: str, trigger_id: str, data_record: dict[str, Any]
    ) -> TriggerEvaluationResult | None:
        return await self.triggers.get_cached_evaluation(
            business_context_id, trigger_id, data_record
        )

    async def evaluate_triggers_from_cache(
        self, business_context_id: str, data_record: Any, trigger_ids: Sequence[str]
    ) -> list[TriggerEvaluationResult]:
        return await self.triggers.evaluate_triggers_from_cache(
            business_context_id, data_record, trigger_ids
        )

    async def invalidate_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> CacheResult[int]:
        return await self.triggers.invalidate_trigger(business_context_id, trigger_id)

    # -------------------------------------------------------------------------
    # Invalidation, stats and health
    # -------------------------------------------------------------------------

    async def invalidate_business_cache(self, business_context_id: str) -> InvalidationReport:
        """Drop every cached combination, trigger and verdict of one business."""
        combinations = await self.combinations.invalidate_business(business_context_id)
        definitions, evaluations = await self.triggers.clear_business(business_context_id)

        reasons = [
            r.reason for r in (combinations, definitions, evaluations) if isinstance(r, Degraded)
        ]
        return InvalidationReport(
            business_context_id=business_context_id,
            combinations=combinations.value,
            triggers=definitions.value,
            evaluations=evaluations.value,
            degraded=bool(reasons),
            reason=reasons[0] if reasons else None,
        )

    async def _redis_stats(self) -> dict[str, int]:
        stats = await self.store.info("stats")
        keyspace = await self.store.info("keyspace")
        total_keys = sum(
            int(db.get("keys", 0)) for db in keyspace.values() if isinstance(db, dict)
        )
        return {
            "keyspace_hits": int(stats.get("keyspace_hits", 0)),
            "keyspace_misses": int(stats.get("keyspace_misses", 0)),
            "total_keys": total_keys,
        }

    async def get_cache_stats(self, business_context_id: str | None = None) -> CacheStats:
        """Cumulative cache metrics, optionally with one business context's key counts."""
        degraded = False
        try:
            redis_stats = await self._redis_stats()
        except CacheUnavailableError as exc:
            logger.warning("Failed to get Redis metrics: %s", exc)
            redis_stats = {}
            degraded = True

        business = None
        if business_context_id is not None:
            business = await self.triggers.business_stats(business_context_id)
            combinations = await self.combinations.count_business(business_context_id)
            business.cached_combinations = combinations.value
            degraded = degraded or isinstance(combinations, Degraded)

        return CacheStats(
            combinations=self.combination_cache.stats.snapshot(),
            trigger_definitions=self.trigger_cache.stats.snapshot(),
            trigger_evaluations=self.evaluation_cache.stats.snapshot(),
            business=business,
            redis=redis_stats,
            degraded=degraded,
        )

    async def health_check(self) -> HealthReport:
        """Ping the cache backend and report latency, memory and metrics."""
        try:
            latency_ms = await self.store.ping()
        except CacheUnavailableError as exc:
            return HealthReport(
                status="unhealthy", details={"connected": False, "error": str(exc)}
            )

        details: dict[str, Any] = {"connected": True}
        try:
            memory = await self.store.info("memory")
            details["memory"] = {
                "used": memory.get("used_memory_human", "unknown"),
                "peak": memory.get("used_memory_peak_human", "unknown"),
            }
        except CacheUnavailableError as exc:
            details["memory"] = {"error": str(exc)}

        details["metrics"] = {
            "combinations": self.combination_cache.stats.snapshot().model_dump(),
            "trigger_definitions": self.trigger_cache.stats.snapshot().model_dump(),
            "trigger_evaluations": self.evaluation_cache.stats.snapshot().model_dump(),
        }
        return HealthReport(status="healthy", latency_ms=round(latency_ms, 3), details=details)
