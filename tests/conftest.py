"""Global pytest configuration and fixtures.

Provides an in-memory Redis client with a controllable clock, and an engine
wired to it, so unit tests never need a running server.
"""

from __future__ import annotations

import pytest

from callflow.cache.keys import CacheKeys
from callflow.cache.redis import RedisCache
from callflow.config import Settings
from callflow.engine import CallflowEngine
from callflow.models.questions import CandidateQuestion
from callflow.models.triggers import ConditionOperator, DynamicTrigger, TriggerCondition
from callflow.observability.metrics import MetricsRegistry
from callflow.records import InMemoryRecordStore
from tests.fakes import FakeClock, FakeRedis


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def store(fake_redis: FakeRedis) -> RedisCache:
    return RedisCache(fake_redis)  # type: ignore[arg-type]


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry(enabled=True)


@pytest.fixture
def keys() -> CacheKeys:
    return CacheKeys()


@pytest.fixture
def questions() -> list[CandidateQuestion]:
    return [
        CandidateQuestion(question_id="q1", priority=5, estimated_tokens=30, topic_category="A"),
        CandidateQuestion(question_id="q2", priority=4, estimated_tokens=30, topic_category="A"),
        CandidateQuestion(question_id="q3", priority=3, estimated_tokens=30, topic_category="B"),
        CandidateQuestion(question_id="q4", priority=2, estimated_tokens=25, topic_category="C"),
    ]


@pytest.fixture
def vip_trigger() -> tuple[DynamicTrigger, list[TriggerCondition]]:
    return (
        DynamicTrigger(id="t-vip", name="VIP customer"),
        [
            TriggerCondition(
                id="c-spend",
                condition_key="spend",
                condition_operator=ConditionOperator.GTE,
                condition_value="100",
            ),
            TriggerCondition(
                id="c-tier",
                condition_key="customer.tier",
                condition_operator=ConditionOperator.EQ,
                condition_value="gold",
                is_required=False,
            ),
        ],
    )


@pytest.fixture
def records(
    questions: list[CandidateQuestion],
    vip_trigger: tuple[DynamicTrigger, list[TriggerCondition]],
) -> InMemoryRecordStore:
    return InMemoryRecordStore(questions, [vip_trigger])


@pytest.fixture
def settings() -> Settings:
    return Settings(single_flight=True)


@pytest.fixture
def engine(
    store: RedisCache,
    records: InMemoryRecordStore,
    settings: Settings,
    metrics: MetricsRegistry,
    clock: FakeClock,
) -> CallflowEngine:
    return CallflowEngine(
        store, records, records, settings=settings, metrics=metrics, clock=clock
    )
