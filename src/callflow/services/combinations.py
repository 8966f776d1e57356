"""Combination cache service.

Fronts the combination optimizer with the cache orchestrator: a request is
validated, fingerprinted into a key, and only optimized on a cache miss.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from callflow.cache.keys import CacheKeys
from callflow.cache.orchestrator import CacheOrchestrator
from callflow.cache.result import CacheResult
from callflow.core.optimizer import DEFAULT_MAX_ITEMS, optimize
from callflow.models.questions import CombinationRequest, OptimizedCombination, PreWarmScenario
from callflow.observability.logging import LogContext
from callflow.records import QuestionRecordStore

logger = logging.getLogger(__name__)


class CombinationCacheService:
    """Optimized question combinations, cached per request fingerprint."""

    def __init__(
        self,
        orchestrator: CacheOrchestrator[OptimizedCombination],
        keys: CacheKeys,
        records: QuestionRecordStore,
        *,
        ttl: int,
        max_questions: int = DEFAULT_MAX_ITEMS,
        clock: Callable[[], float] = time.time,
    ):
        self.orchestrator = orchestrator
        self.keys = keys
        self.records = records
        self.ttl = ttl
        self.max_questions = max_questions
        self.clock = clock

    async def get_optimized_combination(
        self, request: CombinationRequest | dict[str, Any]
    ) -> CacheResult[OptimizedCombination]:
        """Get an optimized combination from cache or compute it.

        Raises:
            InvalidRequestError: If the request fails validation
        """
        request = CombinationRequest.parse(request)
        key = self.keys.combination(request)

        with LogContext(business_context_id=request.business_context_id):
            return await self.orchestrator.get_or_compute(
                key, lambda: self.compute(request, key), self.ttl
            )

    async def compute(
        self, request: CombinationRequest, cache_key: str = ""
    ) -> OptimizedCombination:
        """Run the optimizer for a request without consulting the cache."""
        question_ids = request.effective_questions
        excluded = set(request.exclude_questions)
        candidates = [
            q
            for q in await self.records.fetch_questions(question_ids)
            if q.question_id not in excluded
        ]

        combination = optimize(
            candidates,
            request.max_duration_seconds,
            request.priority_weights,
            request.topic_preferences,
            self.max_questions,
            cache_key=cache_key,
            generated_at=self.clock(),
            ttl=self.ttl,
        )
        logger.debug(
            "Optimized %d of %d candidates into %d questions (%d tokens)",
            len(candidates),
            len(question_ids),
            len(combination.questions),
            combination.total_tokens,
        )
        return combination

    async def invalidate_business(self, business_context_id: str) -> CacheResult[int]:
        """Invalidate every cached combination of one business context."""
        prefix = self.keys.business_prefix(CacheKeys.COMBINATIONS, business_context_id)
        result = await self.orchestrator.invalidate_prefix(prefix)
        logger.info(
            "Invalidated %d combination cache entries for business %s",
            result.value,
            business_context_id,
        )
        return result

    async def count_business(self, business_context_id: str) -> CacheResult[int]:
        prefix = self.keys.business_prefix(CacheKeys.COMBINATIONS, business_context_id)
        return await self.orchestrator.count(prefix)

    async def pre_warm(
        self, business_context_id: str, scenarios: Sequence[PreWarmScenario | dict[str, Any]]
    ) -> int:
        """Compute combinations for common scenarios ahead of traffic.

        Scenarios run concurrently; a failing scenario is logged and skipped.
        Returns the number of scenarios warmed.
        """
        logger.info("Pre-warming combination cache for business %s", business_context_id)

        async def warm(scenario: PreWarmScenario | dict[str, Any]) -> bool:
            try:
                parsed = PreWarmScenario.model_validate(scenario)
                await self.get_optimized_combination(
                    CombinationRequest(
                        business_context_id=business_context_id,
                        max_duration_seconds=parsed.max_duration_seconds,
                        available_questions=parsed.question_pool,
                        priority_weights=parsed.priority_weights,
                    )
                )
            except Exception:
                logger.exception("Failed to pre-warm cache scenario")
                return False
            return True

        outcomes = await asyncio.gather(*(warm(s) for s in scenarios))
        warmed = sum(outcomes)
        logger.info(
            "Cache pre-warming completed for business %s (%d/%d scenarios)",
            business_context_id,
            warmed,
            len(scenarios),
        )
        return warmed
