"""Trigger executor.

Interprets a CompiledEvaluator against one data record. A trigger fires when
every required condition holds and, if optional conditions exist, at least one
of them holds. Every condition that holds is reported in matched_conditions.

A field that is missing, None, or of an incomparable type never matches,
including for ``!=``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from callflow.errors import TriggerEvaluationError
from callflow.models.triggers import (
    CompiledEvaluator,
    Comparison,
    EvaluationOutcome,
    Membership,
    Range,
)

_MISSING = object()


def resolve_field(record: Mapping[str, Any], path: str) -> Any:
    """Look up a possibly dotted field path, returning _MISSING when absent."""
    if path in record:
        return record[path]
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def lookup(record: Mapping[str, Any], path: str, default: Any = None) -> Any:
    value = resolve_field(record, path)
    return default if value is _MISSING else value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return bool(left == right)
    if type(left) is not type(right):
        return False
    return bool(left == right)


def _ordered(left: Any, right: Any) -> bool:
    return (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )


def _check_comparison(value: Any, predicate: Comparison) -> bool:
    operand = predicate.operand
    if predicate.op == "==":
        return _strict_equals(value, operand)
    if predicate.op == "!=":
        return not _strict_equals(value, operand)
    if not _ordered(value, operand):
        return False
    if predicate.op == ">=":
        return bool(value >= operand)
    return bool(value <= operand)


def _check_membership(value: Any, predicate: Membership) -> bool:
    if not isinstance(value, (list, tuple)):
        return False
    return any(_strict_equals(item, predicate.operand) for item in value)


def _check_range(value: Any, predicate: Range) -> bool:
    if not _is_number(value):
        return False
    return bool(predicate.low <= value <= predicate.high)


def check(predicate: Comparison | Membership | Range, record: Mapping[str, Any]) -> bool:
    """Evaluate one predicate against a record."""
    value = resolve_field(record, predicate.field)
    if value is _MISSING or value is None:
        return False
    if isinstance(predicate, Comparison):
        return _check_comparison(value, predicate)
    if isinstance(predicate, Membership):
        return _check_membership(value, predicate)
    return _check_range(value, predicate)


def execute(evaluator: CompiledEvaluator, record: Any) -> EvaluationOutcome:
    """Apply a compiled evaluator to a data record.

    Raises:
        TriggerEvaluationError: If the record is not a mapping
    """
    if not isinstance(record, Mapping):
        raise TriggerEvaluationError(
            f"trigger {evaluator.trigger_id}: record must be a mapping, "
            f"got {type(record).__name__}"
        )

    matched: list[str] = []
    required_results: list[bool] = []
    optional_results: list[bool] = []

    for compiled in evaluator.checks:
        holds = check(compiled.predicate, record)
        if holds:
            matched.append(compiled.condition_id)
        if compiled.required:
            required_results.append(holds)
        else:
            optional_results.append(holds)

    all_required = all(required_results)
    any_optional = not optional_results or any(optional_results)
    return EvaluationOutcome(triggered=all_required and any_optional, matched_conditions=matched)
