"""Question combination models.

A CombinationRequest identifies one optimization call; the optimizer turns the
candidate questions it references into an OptimizedCombination.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from callflow.errors import InvalidRequestError


class CandidateQuestion(BaseModel):
    """Question metadata supplied by the record store."""

    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    priority: int = Field(..., ge=1, le=5)
    estimated_tokens: int = Field(..., gt=0)
    topic_category: str = Field(..., min_length=1)


class SelectedQuestion(BaseModel):
    """A candidate accepted into a combination, with its final position."""

    question_id: str
    priority: int
    estimated_tokens: int
    topic_category: str
    order: int = Field(..., ge=1)


class CombinationRequest(BaseModel):
    """Semantic identity of a combination request."""

    business_context_id: str = Field(..., min_length=1)
    max_duration_seconds: int = Field(..., gt=0)
    available_questions: list[str] = Field(default_factory=list)
    priority_weights: dict[str, float] = Field(default_factory=dict)
    topic_preferences: dict[str, float] = Field(default_factory=dict)
    exclude_questions: list[str] = Field(default_factory=list)

    @field_validator("priority_weights", "topic_preferences")
    @classmethod
    def _non_negative_weights(cls, value: dict[str, float]) -> dict[str, float]:
        negative = sorted(k for k, w in value.items() if w < 0)
        if negative:
            raise ValueError(f"weights must be non-negative: {', '.join(negative)}")
        return value

    @property
    def effective_questions(self) -> list[str]:
        """Candidate ids with exclusions removed, de-duplicated in request order."""
        excluded = set(self.exclude_questions)
        seen: set[str] = set()
        result: list[str] = []
        for question_id in self.available_questions:
            if question_id in excluded or question_id in seen:
                continue
            seen.add(question_id)
            result.append(question_id)
        return result

    @classmethod
    def parse(cls, data: Any) -> CombinationRequest:
        """Validate raw input, raising InvalidRequestError on failure."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise InvalidRequestError(f"invalid combination request: {first['msg']}", field) from exc


class OptimizedCombination(BaseModel):
    """Ordered, budget-respecting, topic-balanced question selection."""

    questions: list[SelectedQuestion] = Field(default_factory=list)
    total_tokens: int = 0
    estimated_duration: int = 0
    priority_score: float = 0.0
    group_balance: dict[str, float] = Field(default_factory=dict)
    cache_key: str = ""
    generated_at: float = 0.0
    ttl: int = 0

    @property
    def question_ids(self) -> list[str]:
        return [q.question_id for q in self.questions]


class PreWarmScenario(BaseModel):
    """A common request shape to compute ahead of traffic."""

    max_duration_seconds: int = Field(..., gt=0)
    question_pool: list[str]
    priority_weights: dict[str, float] = Field(default_factory=dict)
