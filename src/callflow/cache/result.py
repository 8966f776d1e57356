"""Outcome of a best-effort cache operation.

Cache availability is infrastructure, not a correctness dependency, so cache
failures are returned as data instead of raised:

    result = await orchestrator.get_or_compute(key, compute, ttl)
    if isinstance(result, Degraded):
        logger.warning("served without cache: %s", result.reason)
    value = result.value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """The cache behaved normally (hit, or miss followed by a store)."""

    value: T
    hit: bool = False

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """The value was computed but the cache could not be used."""

    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


CacheResult = Union[Ok[T], Degraded[T]]
