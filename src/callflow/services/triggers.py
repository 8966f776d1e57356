"""Trigger cache service.

Compiled triggers are cached per business context with a long TTL; their
verdicts on individual data records are cached separately, keyed by a hash of
the fields the trigger reads, with a much shorter TTL.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from callflow.cache.keys import CacheKeys
from callflow.cache.orchestrator import CacheOrchestrator
from callflow.cache.result import CacheResult, Degraded, Ok
from callflow.core.compiler import compile_trigger
from callflow.core.executor import execute
from callflow.errors import (
    TriggerCompilationError,
    TriggerEvaluationError,
    TriggerNotFoundError,
)
from callflow.models.cache import BusinessCacheStats
from callflow.models.triggers import (
    CachedEvaluation,
    DynamicTrigger,
    TriggerCacheEntry,
    TriggerCondition,
    TriggerEvaluationResult,
)
from callflow.observability.logging import LogContext
from callflow.observability.metrics import MetricsRegistry
from callflow.records import TriggerRecordStore

logger = logging.getLogger(__name__)


class TriggerCacheService:
    """Compiled trigger cache and cached trigger evaluation."""

    def __init__(
        self,
        definitions: CacheOrchestrator[TriggerCacheEntry],
        evaluations: CacheOrchestrator[CachedEvaluation],
        keys: CacheKeys,
        metrics: MetricsRegistry,
        records: TriggerRecordStore | None = None,
        *,
        definition_ttl: int,
        evaluation_ttl: int,
        clock: Callable[[], float] = time.time,
    ):
        self.definitions = definitions
        self.evaluations = evaluations
        self.keys = keys
        self.metrics = metrics
        self.records = records
        self.definition_ttl = definition_ttl
        self.evaluation_ttl = evaluation_ttl
        self.clock = clock

    # -------------------------------------------------------------------------
    # Compiled triggers
    # -------------------------------------------------------------------------

    def _compile(
        self, trigger: DynamicTrigger, conditions: Sequence[TriggerCondition]
    ) -> TriggerCacheEntry:
        return TriggerCacheEntry(
            trigger=trigger,
            conditions=list(conditions),
            evaluator=compile_trigger(trigger, conditions),
            generated_at=self.clock(),
            ttl=self.definition_ttl,
        )

    async def cache_trigger(
        self,
        business_context_id: str,
        trigger: DynamicTrigger,
        conditions: Sequence[TriggerCondition],
    ) -> CacheResult[TriggerCacheEntry]:
        """Compile a trigger and (re)place it in the cache.

        Earlier verdicts for the trigger are dropped since they may no longer
        match the new definition.

        Raises:
            TriggerCompilationError: If a condition is malformed
        """
        entry = self._compile(trigger, conditions)
        key = self.keys.trigger_definition(business_context_id, trigger.id)
        result = await self.definitions.store_value(key, entry, self.definition_ttl)
        await self.evaluations.invalidate_prefix(
            self.keys.trigger_evaluations(business_context_id, trigger.id)
        )
        logger.debug("Cached trigger %s for business %s", trigger.id, business_context_id)
        return result

    async def load_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> CacheResult[TriggerCacheEntry] | None:
        """Get a compiled trigger from cache, compiling it from the record store on a miss.

        Returns None when the record store does not know the trigger.

        Raises:
            TriggerCompilationError: If the stored definition is malformed
        """
        records = self.records
        if records is None:
            raise RuntimeError("no trigger record store configured")

        async def compute() -> TriggerCacheEntry:
            definition = await records.fetch_trigger(trigger_id)
            if definition is None:
                raise TriggerNotFoundError(trigger_id)
            trigger, conditions = definition
            return self._compile(trigger, conditions)

        key = self.keys.trigger_definition(business_context_id, trigger_id)
        try:
            return await self.definitions.get_or_compute(key, compute, self.definition_ttl)
        except TriggerNotFoundError:
            logger.debug("Trigger %s not found in record store", trigger_id)
            return None

    async def get_cached_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> TriggerCacheEntry | None:
        result = await self.definitions.lookup(
            self.keys.trigger_definition(business_context_id, trigger_id)
        )
        return result.value

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    async def _evaluate(
        self, entry: TriggerCacheEntry, record: Mapping[str, Any]
    ) -> CachedEvaluation:
        start = time.perf_counter()
        outcome = execute(entry.evaluator, record)
        return CachedEvaluation(
            trigger_id=entry.trigger.id,
            triggered=outcome.triggered,
            matched_conditions=outcome.matched_conditions,
            evaluation_time_ms=(time.perf_counter() - start) * 1000,
            generated_at=self.clock(),
            ttl=self.evaluation_ttl,
        )

    async def evaluate_trigger(
        self, business_context_id: str, entry: TriggerCacheEntry, record: Any
    ) -> TriggerEvaluationResult:
        """Evaluate one compiled trigger, reusing a cached verdict when available.

        Raises:
            TriggerEvaluationError: If the record cannot be evaluated
        """
        start = time.perf_counter()
        if not isinstance(record, Mapping):
            raise TriggerEvaluationError(
                f"trigger {entry.trigger.id}: record must be a mapping, "
                f"got {type(record).__name__}"
            )

        key = self.keys.trigger_evaluation(
            business_context_id, entry.trigger.id, record, entry.evaluator.referenced_fields
        )
        result = await self.evaluations.get_or_compute(
            key, functools.partial(self._evaluate, entry, record), self.evaluation_ttl
        )
        verdict = result.value
        return TriggerEvaluationResult(
            trigger_id=entry.trigger.id,
            triggered=verdict.triggered,
            matched_conditions=verdict.matched_conditions,
            evaluation_time_ms=(time.perf_counter() - start) * 1000,
            from_cache=isinstance(result, Ok) and result.hit,
        )

    async def evaluate_triggers_from_cache(
        self, business_context_id: str, record: Any, trigger_ids: Sequence[str]
    ) -> list[TriggerEvaluationResult]:
        """Evaluate cached triggers against a data record.

        Triggers absent from the cache are skipped. A trigger that cannot be
        evaluated is reported as not triggered and does not stop the batch.
        """
        results: list[TriggerEvaluationResult] = []

        with LogContext(business_context_id=business_context_id):
            for trigger_id in trigger_ids:
                start = time.perf_counter()
                entry = await self.get_cached_trigger(business_context_id, trigger_id)
                if entry is None:
                    logger.debug("Trigger %s not found in cache, skipping", trigger_id)
                    continue

                try:
                    evaluation = await self.evaluate_trigger(business_context_id, entry, record)
                except (TriggerEvaluationError, TriggerCompilationError) as exc:
                    logger.error("Failed to evaluate trigger %s: %s", trigger_id, exc)
                    self.metrics.trigger_evaluations_total.labels(outcome="error").inc()
                    results.append(
                        TriggerEvaluationResult(
                            trigger_id=trigger_id,
                            triggered=False,
                            matched_conditions=[],
                            evaluation_time_ms=(time.perf_counter() - start) * 1000,
                        )
                    )
                    continue

                outcome = "triggered" if evaluation.triggered else "not_triggered"
                self.metrics.trigger_evaluations_total.labels(outcome=outcome).inc()
                results.append(evaluation)

        return results

    async def get_cached_evaluation(
        self, business_context_id: str, trigger_id: str, record: Mapping[str, Any]
    ) -> TriggerEvaluationResult | None:
        """A previously cached verdict for this trigger and record, if any."""
        entry = await self.get_cached_trigger(business_context_id, trigger_id)
        if entry is None:
            return None

        try:
            key = self.keys.trigger_evaluation(
                business_context_id, trigger_id, record, entry.evaluator.referenced_fields
            )
        except TriggerEvaluationError:
            return None

        cached = (await self.evaluations.lookup(key)).value
        if cached is None:
            return None
        return TriggerEvaluationResult(
            trigger_id=trigger_id,
            triggered=cached.triggered,
            matched_conditions=cached.matched_conditions,
            evaluation_time_ms=cached.evaluation_time_ms,
            from_cache=True,
        )

    # -------------------------------------------------------------------------
    # Invalidation and stats
    # -------------------------------------------------------------------------

    async def invalidate_trigger(
        self, business_context_id: str, trigger_id: str
    ) -> CacheResult[int]:
        """Drop a trigger definition and every cached verdict for it."""
        definitions = await self.definitions.invalidate(
            self.keys.trigger_definition(business_context_id, trigger_id)
        )
        evaluations = await self.evaluations.invalidate_prefix(
            self.keys.trigger_evaluations(business_context_id, trigger_id)
        )
        deleted = definitions.value + evaluations.value
        logger.debug("Invalidated cache for trigger %s", trigger_id)

        for partial in (definitions, evaluations):
            if isinstance(partial, Degraded):
                return Degraded(deleted, partial.reason)
        return Ok(deleted)

    async def clear_business(
        self, business_context_id: str
    ) -> tuple[CacheResult[int], CacheResult[int]]:
        """Clear definitions and verdicts of one business context.

        Returns (definitions deleted, evaluations deleted).
        """
        definitions = await self.definitions.invalidate_prefix(
            self.keys.business_prefix(CacheKeys.TRIGGER_DEFS, business_context_id)
        )
        evaluations = await self.evaluations.invalidate_prefix(
            self.keys.business_prefix(CacheKeys.TRIGGER_EVAL, business_context_id)
        )
        logger.info(
            "Cleared trigger cache for business %s (%d definitions, %d evaluations)",
            business_context_id,
            definitions.value,
            evaluations.value,
        )
        return definitions, evaluations

    async def business_stats(self, business_context_id: str) -> BusinessCacheStats:
        definitions = await self.definitions.count(
            self.keys.business_prefix(CacheKeys.TRIGGER_DEFS, business_context_id)
        )
        verdicts = await self.evaluations.values(
            self.keys.business_prefix(CacheKeys.TRIGGER_EVAL, business_context_id)
        )
        times = [v.evaluation_time_ms for v in verdicts.value]
        average = sum(times) / len(times) if times else 0.0
        return BusinessCacheStats(
            business_context_id=business_context_id,
            cached_triggers=definitions.value,
            cached_evaluations=len(verdicts.value),
            average_evaluation_time_ms=round(average, 2),
        )
