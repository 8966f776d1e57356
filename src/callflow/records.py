"""Record-store collaborator.

The engine reads candidate questions and trigger definitions from an external
record store; it never writes to it. Any object implementing the protocols
below can be passed to the services.

InMemoryRecordStore is a complete implementation backed by dictionaries, used
by the CLI (loaded from JSON) and by tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import orjson

from callflow.models.questions import CandidateQuestion
from callflow.models.triggers import DynamicTrigger, TriggerCondition

TriggerDefinition = tuple[DynamicTrigger, list[TriggerCondition]]


@runtime_checkable
class QuestionRecordStore(Protocol):
    async def fetch_questions(self, question_ids: Sequence[str]) -> list[CandidateQuestion]:
        """Metadata for the given ids, in request order. Unknown ids are omitted."""
        ...


@runtime_checkable
class TriggerRecordStore(Protocol):
    async def fetch_trigger(self, trigger_id: str) -> TriggerDefinition | None:
        """A trigger and its conditions, or None if it does not exist."""
        ...


class InMemoryRecordStore:
    """Dictionary-backed record store."""

    def __init__(
        self,
        questions: Iterable[CandidateQuestion] = (),
        triggers: Iterable[TriggerDefinition] = (),
    ):
        self.questions: dict[str, CandidateQuestion] = {q.question_id: q for q in questions}
        self.triggers: dict[str, TriggerDefinition] = {t.id: (t, list(c)) for t, c in triggers}

    async def fetch_questions(self, question_ids: Sequence[str]) -> list[CandidateQuestion]:
        return [self.questions[qid] for qid in question_ids if qid in self.questions]

    async def fetch_trigger(self, trigger_id: str) -> TriggerDefinition | None:
        return self.triggers.get(trigger_id)

    def add_question(self, question: CandidateQuestion) -> None:
        self.questions[question.question_id] = question

    def add_trigger(self, trigger: DynamicTrigger, conditions: Iterable[TriggerCondition]) -> None:
        self.triggers[trigger.id] = (trigger, list(conditions))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryRecordStore:
        """Build from ``{"questions": [...], "triggers": [{"trigger": ..., "conditions": [...]}]}``."""
        questions = [CandidateQuestion.model_validate(q) for q in data.get("questions", [])]
        triggers = [
            (
                DynamicTrigger.model_validate(item["trigger"]),
                [TriggerCondition.model_validate(c) for c in item.get("conditions", [])],
            )
            for item in data.get("triggers", [])
        ]
        return cls(questions, triggers)

    @classmethod
    def from_json(cls, path: Path) -> InMemoryRecordStore:
        data = orjson.loads(path.read_bytes())
        if isinstance(data, list):
            data = {"questions": data}
        return cls.from_dict(data)
