"""Get-or-compute cache orchestration.

One CacheOrchestrator fronts one cache concern (combinations, compiled
triggers, trigger evaluations). It owns:
- the cache-aside flow with hit/miss accounting
- size-bounded eviction of the oldest entries by generation time
- prefix-scoped invalidation
- degrade-on-error: a failing store never fails the caller

Concurrent misses on the same key share one in-flight computation unless
single_flight is disabled, in which case every miss computes and the last
write wins.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import orjson
from pydantic import BaseModel, ValidationError

from callflow.cache.redis import RedisCache
from callflow.cache.result import CacheResult, Degraded, Ok
from callflow.errors import CacheUnavailableError
from callflow.models.cache import CacheMetrics
from callflow.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_EVICTION_FRACTION = 0.2


class CacheOrchestrator(Generic[M]):
    """Cache-aside orchestration for one concern.

    Cached models must carry ``generated_at`` (epoch seconds) and ``ttl``
    (seconds) fields; both drive expiry checks and eviction order.
    """

    def __init__(
        self,
        store: RedisCache,
        model: type[M],
        *,
        name: str,
        scope_prefix: str,
        max_entries: int,
        metrics: MetricsRegistry,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
        single_flight: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.model = model
        self.name = name
        self.scope_prefix = scope_prefix
        self.max_entries = max_entries
        self.metrics = metrics
        self.eviction_fraction = eviction_fraction
        self.single_flight = single_flight
        self.clock = clock
        self.stats = CacheMetrics()
        self._inflight: dict[str, asyncio.Future[CacheResult[M]]] = {}

    # -------------------------------------------------------------------------
    # Get-or-compute
    # -------------------------------------------------------------------------

    async def get_or_compute(
        self, key: str, compute_fn: Callable[[], Awaitable[M]], ttl: int
    ) -> CacheResult[M]:
        """Return the live cached value for key, or compute and store it.

        Exceptions raised by compute_fn propagate; cache failures never do.
        """
        start = time.perf_counter()
        self.stats.total_requests += 1
        try:
            return await self._get_or_compute(key, compute_fn, ttl)
        finally:
            elapsed = time.perf_counter() - start
            self.stats.record_response_time(elapsed * 1000)
            self.metrics.cache_operation_duration_seconds.labels(cache_type=self.name).observe(
                elapsed
            )

    async def _get_or_compute(
        self, key: str, compute_fn: Callable[[], Awaitable[M]], ttl: int
    ) -> CacheResult[M]:
        try:
            cached = await self._read(key)
        except CacheUnavailableError as exc:
            self._record_miss(key)
            self._record_degraded("get", exc)
            return Degraded(await compute_fn(), str(exc))

        if cached is not None:
            self.stats.hits += 1
            self.metrics.cache_hits_total.labels(cache_type=self.name).inc()
            logger.debug("Cache hit for %s: %s", self.name, key)
            return Ok(cached, hit=True)

        self._record_miss(key)

        if not self.single_flight:
            return await self._compute_and_store(key, compute_fn, ttl)

        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(self._compute_and_store(key, compute_fn, ttl))
            self._inflight[key] = inflight
            inflight.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            logger.debug("Joining in-flight computation for %s: %s", self.name, key)
        return await asyncio.shield(inflight)

    def _release(self, key: str, future: asyncio.Future[CacheResult[M]]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    async def _compute_and_store(
        self, key: str, compute_fn: Callable[[], Awaitable[M]], ttl: int
    ) -> CacheResult[M]:
        value = await compute_fn()
        return await self.store_value(key, value, ttl)

    def _record_miss(self, key: str) -> None:
        self.stats.misses += 1
        self.metrics.cache_misses_total.labels(cache_type=self.name).inc()
        logger.debug("Cache miss for %s: %s", self.name, key)

    def _record_degraded(self, operation: str, exc: CacheUnavailableError) -> None:
        self.metrics.cache_degraded_total.labels(cache_type=self.name, operation=operation).inc()
        logger.warning("Cache %s unavailable, continuing without cache: %s", self.name, exc)

    # -------------------------------------------------------------------------
    # Reads and writes
    # -------------------------------------------------------------------------

    def _expired(self, value: M) -> bool:
        generated_at = float(getattr(value, "generated_at", 0.0))
        ttl = int(getattr(value, "ttl", 0))
        return ttl > 0 and self.clock() - generated_at > ttl

    async def _read(self, key: str) -> M | None:
        raw = await self.store.get(key)
        if raw is None:
            return None

        try:
            value = self.model.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping malformed %s cache entry: %s", self.name, key)
            await self._discard(key)
            return None

        if self._expired(value):
            await self._discard(key)
            return None
        return value

    async def _discard(self, key: str) -> None:
        self.stats.cache_size -= await self.store.delete(key)

    async def lookup(self, key: str) -> CacheResult[M | None]:
        """Read a live entry without computing or touching hit/miss counters."""
        try:
            return Ok(await self._read(key))
        except CacheUnavailableError as exc:
            self._record_degraded("lookup", exc)
            return Degraded(None, str(exc))

    async def store_value(self, key: str, value: M, ttl: int) -> CacheResult[M]:
        """Evict if the concern is full, then store value under key."""
        try:
            await self.evict_if_needed()
            await self.store.set(key, orjson.dumps(value.model_dump(mode="json")), ttl)
        except CacheUnavailableError as exc:
            self._record_degraded("set", exc)
            return Degraded(value, str(exc))

        self.stats.cache_size += 1
        logger.debug("Cached %s entry: %s", self.name, key)
        return Ok(value)

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    @staticmethod
    def _generated_at(raw: bytes | None) -> float:
        """Generation time recorded in a raw entry; 0 for unreadable entries."""
        if raw is None:
            return 0.0
        try:
            return float(orjson.loads(raw)["generated_at"])
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError):
            return 0.0

    async def evict_if_needed(self) -> int:
        """Delete the oldest entries once the concern reaches max_entries.

        Returns the number of entries evicted.

        Raises:
            CacheUnavailableError: If the store cannot be scanned
        """
        keys = await self.store.keys_by_prefix(self.scope_prefix)
        self.stats.cache_size = len(keys)
        if len(keys) < self.max_entries:
            return 0

        raws = await self.store.get_many(keys)
        aged = sorted(zip(keys, raws), key=lambda item: self._generated_at(item[1]))
        batch = max(1, math.floor(len(keys) * self.eviction_fraction))
        victims = [key for key, _ in aged[:batch]]

        evicted = await self.store.delete(*victims)
        self.stats.evictions += evicted
        self.stats.cache_size -= evicted
        self.metrics.cache_evictions_total.labels(cache_type=self.name).inc(evicted)
        logger.info("Evicted %d old %s cache entries", evicted, self.name)
        return evicted

    # -------------------------------------------------------------------------
    # Scoped operations
    # -------------------------------------------------------------------------

    def _check_scope(self, prefix: str) -> None:
        if not prefix.startswith(self.scope_prefix):
            raise ValueError(f"prefix {prefix!r} is outside the {self.name} scope")

    async def invalidate(self, key: str) -> CacheResult[int]:
        """Delete a single entry. Returns the number deleted (0 or 1)."""
        self._check_scope(key)
        try:
            deleted = await self.store.delete(key)
        except CacheUnavailableError as exc:
            self._record_degraded("invalidate", exc)
            return Degraded(0, str(exc))

        self.stats.cache_size -= deleted
        return Ok(deleted)

    async def invalidate_prefix(self, prefix: str) -> CacheResult[int]:
        """Delete every entry under prefix. Returns the number deleted."""
        self._check_scope(prefix)
        try:
            deleted = await self.store.delete_prefix(prefix)
        except CacheUnavailableError as exc:
            self._record_degraded("invalidate", exc)
            return Degraded(0, str(exc))

        self.stats.cache_size -= deleted
        return Ok(deleted)

    async def count(self, prefix: str | None = None) -> CacheResult[int]:
        """Number of live keys under prefix (defaults to the whole concern)."""
        prefix = prefix or self.scope_prefix
        self._check_scope(prefix)
        try:
            return Ok(await self.store.count_prefix(prefix))
        except CacheUnavailableError as exc:
            self._record_degraded("count", exc)
            return Degraded(0, str(exc))

    async def values(self, prefix: str) -> CacheResult[list[M]]:
        """Readable entries under prefix; malformed entries are skipped."""
        self._check_scope(prefix)
        try:
            keys = await self.store.keys_by_prefix(prefix)
            raws = await self.store.get_many(keys)
        except CacheUnavailableError as exc:
            self._record_degraded("values", exc)
            return Degraded([], str(exc))

        entries: list[M] = []
        for raw in raws:
            if raw is None:
                continue
            try:
                entries.append(self.model.model_validate_json(raw))
            except ValidationError:
                continue
        return Ok(entries)
