"""Redis cache store for the callflow engine.

Thin async wrapper over redis-py providing the key/value operations the
orchestrators need. Every backend failure surfaces as CacheUnavailableError so
callers can fall back to computing without the cache.

Connections use bounded socket timeouts and redis-py's built-in retry with
exponential backoff; once retries are exhausted the error propagates here.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Awaitable, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from callflow.config import Settings
from callflow.errors import CacheUnavailableError

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Keys per DEL/MGET round trip
BATCH_SIZE = 500


def create_redis_client(settings: Settings) -> Redis:
    """Create a Redis client with bounded timeouts and retries.

    The client connects lazily, so construction never blocks or fails on an
    unreachable server.
    """
    retry = Retry(
        ExponentialBackoff(cap=settings.redis_backoff_cap, base=settings.redis_backoff_base),
        settings.redis_max_retries,
    )
    return redis.from_url(  # type: ignore[no-untyped-call]
        settings.redis_url,
        decode_responses=False,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_connect_timeout,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


def _decode(key: bytes | str) -> str:
    return key.decode() if isinstance(key, bytes) else key


class RedisCache:
    """Key/value operations against the shared cache."""

    def __init__(self, client: Redis, scan_count: int = BATCH_SIZE):
        self.client = client
        self.scan_count = scan_count

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (RedisError, OSError) as exc:
            raise CacheUnavailableError(operation, exc) from exc

    # -------------------------------------------------------------------------
    # Single-key operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        async with self._guard("get"):
            return cast(bytes | None, await self.client.get(key))

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store a value that Redis expires after ttl seconds."""
        async with self._guard("set"):
            await self.client.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys in batches. Returns the number of keys removed."""
        if not keys:
            return 0
        deleted = 0
        async with self._guard("delete"):
            for start in range(0, len(keys), BATCH_SIZE):
                deleted += int(await self.client.delete(*keys[start : start + BATCH_SIZE]))
        return deleted

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    async def get_many(self, keys: Sequence[str]) -> list[bytes | None]:
        """Fetch values for keys, None where missing, preserving order."""
        values: list[bytes | None] = []
        async with self._guard("get_many"):
            for start in range(0, len(keys), BATCH_SIZE):
                batch = list(keys[start : start + BATCH_SIZE])
                values.extend(await self.client.mget(batch))
        return values

    async def keys_by_prefix(self, prefix: str) -> list[str]:
        """All keys starting with prefix.

        Uses SCAN to avoid blocking on large keyspaces.
        """
        keys: list[str] = []
        async with self._guard("scan"):
            async for key in self.client.scan_iter(match=f"{prefix}*", count=self.scan_count):
                keys.append(_decode(key))
        return keys

    async def count_prefix(self, prefix: str) -> int:
        return len(await self.keys_by_prefix(prefix))

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key under prefix. Returns the number removed."""
        keys = await self.keys_by_prefix(prefix)
        return await self.delete(*keys)

    # -------------------------------------------------------------------------
    # Server operations
    # -------------------------------------------------------------------------

    async def ping(self) -> float:
        """Round-trip latency in milliseconds."""
        start = time.perf_counter()
        async with self._guard("ping"):
            await cast(Awaitable[bool], self.client.ping())
        return (time.perf_counter() - start) * 1000

    async def info(self, section: str) -> dict[str, Any]:
        async with self._guard("info"):
            return cast(dict[str, Any], await self.client.info(section))

    async def close(self) -> None:
        """Close Redis connections."""
        async with self._guard("close"):
            await self.client.aclose()
