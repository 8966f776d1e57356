"""Tests for the in-memory record store."""

from pathlib import Path

import orjson
import pytest

from callflow.models.questions import CandidateQuestion
from callflow.models.triggers import ConditionOperator
from callflow.records import InMemoryRecordStore, QuestionRecordStore, TriggerRecordStore


class TestInMemoryRecordStore:
    """Tests for dictionary-backed lookups."""

    @pytest.mark.asyncio
    async def test_fetch_questions_in_request_order(self, records: InMemoryRecordStore) -> None:
        """Questions come back in request order, unknown ids omitted."""
        result = await records.fetch_questions(["q3", "unknown", "q1"])

        assert [q.question_id for q in result] == ["q3", "q1"]

    @pytest.mark.asyncio
    async def test_fetch_trigger(self, records: InMemoryRecordStore) -> None:
        """Triggers are returned with their conditions."""
        definition = await records.fetch_trigger("t-vip")

        assert definition is not None
        trigger, conditions = definition
        assert trigger.name == "VIP customer"
        assert [c.id for c in conditions] == ["c-spend", "c-tier"]
        assert await records.fetch_trigger("nope") is None

    @pytest.mark.asyncio
    async def test_add_question(self) -> None:
        """Added questions are fetchable."""
        store = InMemoryRecordStore()
        store.add_question(
            CandidateQuestion(question_id="q", priority=1, estimated_tokens=5, topic_category="A")
        )

        assert len(await store.fetch_questions(["q"])) == 1

    def test_implements_protocols(self, records: InMemoryRecordStore) -> None:
        """The store satisfies both record-store protocols."""
        assert isinstance(records, QuestionRecordStore)
        assert isinstance(records, TriggerRecordStore)


class TestLoading:
    """Tests for loading from JSON."""

    @pytest.mark.asyncio
    async def test_from_json_document(self, tmp_path: Path) -> None:
        """A document with questions and triggers loads both."""
        path = tmp_path / "records.json"
        path.write_bytes(
            orjson.dumps(
                {
                    "questions": [
                        {
                            "question_id": "q1",
                            "priority": 3,
                            "estimated_tokens": 20,
                            "topic_category": "billing",
                        }
                    ],
                    "triggers": [
                        {
                            "trigger": {"id": "t1", "name": "Late payer"},
                            "conditions": [
                                {
                                    "id": "c1",
                                    "condition_key": "days_late",
                                    "condition_operator": ">=",
                                    "condition_value": "30",
                                }
                            ],
                        }
                    ],
                }
            )
        )

        store = InMemoryRecordStore.from_json(path)

        assert [q.question_id for q in await store.fetch_questions(["q1"])] == ["q1"]
        definition = await store.fetch_trigger("t1")
        assert definition is not None
        assert definition[1][0].condition_operator == ConditionOperator.GTE

    def test_from_json_list(self, tmp_path: Path) -> None:
        """A bare list is read as questions."""
        path = tmp_path / "questions.json"
        path.write_bytes(
            orjson.dumps(
                [{"question_id": "q1", "priority": 1, "estimated_tokens": 5, "topic_category": "A"}]
            )
        )

        assert list(InMemoryRecordStore.from_json(path).questions) == ["q1"]
