"""Trigger definition, compiled evaluator and evaluation result models.

The compiled evaluator is a small tagged-variant AST. Each predicate carries a
``kind`` discriminator so a cached evaluator round-trips through JSON and is
interpreted by callflow.core.executor without constructing any code.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class ConditionOperator(str, Enum):
    """Comparison operator of a trigger condition."""

    GTE = ">="
    LTE = "<="
    EQ = "=="
    NEQ = "!="
    INCLUDES = "includes"
    BETWEEN = "between"


class TriggerCondition(BaseModel):
    """One declarative condition of a trigger."""

    id: str = Field(..., min_length=1)
    condition_key: str = Field(..., min_length=1)
    condition_operator: ConditionOperator
    condition_value: Any = None
    is_required: bool = True


class DynamicTrigger(BaseModel):
    """A named rule owned by a business context."""

    id: str = Field(..., min_length=1)
    name: str = ""
    trigger_type: str = "custom"
    is_active: bool = True


# -----------------------------------------------------------------------------
# Compiled evaluator AST
# -----------------------------------------------------------------------------


class Comparison(BaseModel):
    kind: Literal["compare"] = "compare"
    field: str
    op: Literal[">=", "<=", "==", "!="]
    operand: Any = None


class Membership(BaseModel):
    kind: Literal["includes"] = "includes"
    field: str
    operand: Any = None


class Range(BaseModel):
    kind: Literal["between"] = "between"
    field: str
    low: float
    high: float


Predicate = Annotated[Union[Comparison, Membership, Range], Field(discriminator="kind")]


class CompiledCheck(BaseModel):
    condition_id: str
    required: bool
    predicate: Predicate


class CompiledEvaluator(BaseModel):
    """Serializable evaluator for one trigger."""

    trigger_id: str
    checks: list[CompiledCheck] = Field(default_factory=list)
    referenced_fields: list[str] = Field(default_factory=list)

    @property
    def required_checks(self) -> list[CompiledCheck]:
        return [c for c in self.checks if c.required]

    @property
    def optional_checks(self) -> list[CompiledCheck]:
        return [c for c in self.checks if not c.required]


class EvaluationOutcome(BaseModel):
    triggered: bool
    matched_conditions: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Cached entities
# -----------------------------------------------------------------------------


class TriggerCacheEntry(BaseModel):
    """Compiled trigger as stored under the trigger_defs concern."""

    trigger: DynamicTrigger
    conditions: list[TriggerCondition]
    evaluator: CompiledEvaluator
    generated_at: float
    ttl: int

    @property
    def last_updated(self) -> float:
        return self.generated_at


class CachedEvaluation(BaseModel):
    """Evaluation verdict as stored under the trigger_eval concern."""

    trigger_id: str
    triggered: bool
    matched_conditions: list[str] = Field(default_factory=list)
    evaluation_time_ms: float = 0.0
    generated_at: float
    ttl: int


class TriggerEvaluationResult(BaseModel):
    trigger_id: str
    triggered: bool
    matched_conditions: list[str] = Field(default_factory=list)
    evaluation_time_ms: float = 0.0
    from_cache: bool = False
