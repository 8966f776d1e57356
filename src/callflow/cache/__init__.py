"""Cache layer for the callflow engine.

Provides Redis caching with the cache-aside pattern:
- Combination, compiled-trigger and trigger-evaluation concerns
- TTL-based expiration plus size-bounded eviction of the oldest entries
- Business-scoped invalidation by key prefix
- Best-effort degradation: cache failures never fail the caller
"""

from callflow.cache.keys import CacheKeys, record_fingerprint, request_fingerprint
from callflow.cache.orchestrator import CacheOrchestrator
from callflow.cache.redis import RedisCache, create_redis_client
from callflow.cache.result import CacheResult, Degraded, Ok

__all__ = [
    # Keys
    "CacheKeys",
    "record_fingerprint",
    "request_fingerprint",
    # Store
    "RedisCache",
    "create_redis_client",
    # Orchestration
    "CacheOrchestrator",
    "CacheResult",
    "Degraded",
    "Ok",
]
