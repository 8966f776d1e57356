"""Trigger compiler.

Turns a trigger's declarative conditions into a CompiledEvaluator: a list of
typed predicates interpreted by callflow.core.executor. Compilation is pure and
independent of wall-clock time, so identical input always yields an equivalent
evaluator.

Operand normalisation:
- ``>=``, ``<=`` and ``between`` coerce numeric strings ("100", "2.5") to numbers
- ``==`` and ``!=`` keep the operand as given (strict comparison)
- ``between`` accepts ``[low, high]`` or its JSON string form
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import orjson

from callflow.errors import TriggerCompilationError
from callflow.models.triggers import (
    CompiledCheck,
    CompiledEvaluator,
    Comparison,
    ConditionOperator,
    DynamicTrigger,
    Membership,
    Range,
    TriggerCondition,
)


def _coerce_number(value: Any) -> Any:
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() and "." not in value else number
    return value


def _parse_range(condition: TriggerCondition) -> tuple[float, float]:
    raw = condition.condition_value
    if isinstance(raw, str):
        try:
            raw = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise TriggerCompilationError(
                f"between operand is not valid JSON: {condition.condition_value!r}",
                condition.id,
            ) from exc

    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise TriggerCompilationError("between operand must be [low, high]", condition.id)

    bounds = [_coerce_number(v) for v in raw]
    if any(isinstance(b, bool) or not isinstance(b, (int, float)) for b in bounds):
        raise TriggerCompilationError("between bounds must be numeric", condition.id)

    low, high = float(bounds[0]), float(bounds[1])
    if low > high:
        raise TriggerCompilationError(f"between range is empty: {low} > {high}", condition.id)
    return low, high


def compile_condition(condition: TriggerCondition) -> CompiledCheck:
    """Compile a single condition into a predicate."""
    key = condition.condition_key
    operator = condition.condition_operator

    if operator in (ConditionOperator.GTE, ConditionOperator.LTE):
        predicate: Comparison | Membership | Range = Comparison(
            field=key, op=operator.value, operand=_coerce_number(condition.condition_value)
        )
    elif operator in (ConditionOperator.EQ, ConditionOperator.NEQ):
        predicate = Comparison(field=key, op=operator.value, operand=condition.condition_value)
    elif operator == ConditionOperator.INCLUDES:
        predicate = Membership(field=key, operand=condition.condition_value)
    elif operator == ConditionOperator.BETWEEN:
        low, high = _parse_range(condition)
        predicate = Range(field=key, low=low, high=high)
    else:  # pragma: no cover - enum is exhaustive
        raise TriggerCompilationError(f"unsupported operator {operator!r}", condition.id)

    return CompiledCheck(
        condition_id=condition.id,
        required=condition.is_required,
        predicate=predicate,
    )


def compile_trigger(
    trigger: DynamicTrigger, conditions: Sequence[TriggerCondition]
) -> CompiledEvaluator:
    """Compile all conditions of a trigger.

    Raises:
        TriggerCompilationError: If any condition is malformed
    """
    checks = [compile_condition(c) for c in conditions]
    return CompiledEvaluator(
        trigger_id=trigger.id,
        checks=checks,
        referenced_fields=sorted({c.predicate.field for c in checks}),
    )
