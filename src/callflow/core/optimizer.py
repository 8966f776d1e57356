"""Greedy question combination optimizer.

Selects an ordered subset of candidate questions that fits a call's duration
budget. The selection is a score-sort followed by a constrained greedy accept,
not an exact knapsack; callers depend on the greedy order.

Speaking-rate model:
- 60% of the call is available for asking questions
- 150 spoken words per minute
- 1.3 tokens per word when budgeting, 0.75 words per token when estimating
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from callflow.errors import InvalidRequestError
from callflow.models.questions import CandidateQuestion, OptimizedCombination, SelectedQuestion

SPEAKABLE_FRACTION = 0.6
WORDS_PER_MINUTE = 150
TOKENS_PER_WORD = 1.3
WORDS_PER_TOKEN = 0.75

RESPONSE_SECONDS_PER_QUESTION = 8
PROCESSING_SECONDS_PER_QUESTION = 2

MAX_TOPIC_SHARE = 0.6
MIN_USEFUL_TOKENS = 15
DEFAULT_MAX_ITEMS = 20


def duration_to_tokens(duration_seconds: float) -> int:
    """Token budget available for questions in a call of the given length."""
    speaking_seconds = duration_seconds * SPEAKABLE_FRACTION
    words = (speaking_seconds / 60) * WORDS_PER_MINUTE
    return math.floor(words * TOKENS_PER_WORD)


def estimate_duration(total_tokens: int, question_count: int) -> int:
    """Estimated call length in seconds for a selection."""
    words = total_tokens * WORDS_PER_TOKEN
    speaking_time = (words / WORDS_PER_MINUTE) * 60
    interaction_time = question_count * RESPONSE_SECONDS_PER_QUESTION
    processing_time = question_count * PROCESSING_SECONDS_PER_QUESTION
    return math.ceil(speaking_time + interaction_time + processing_time)


def score_question(
    question: CandidateQuestion,
    priority_weights: Mapping[str, float],
    topic_weights: Mapping[str, float],
) -> float:
    priority = priority_weights.get(question.question_id)
    if priority is None:
        priority = question.priority
    topic = topic_weights.get(question.topic_category, 1.0)
    token_efficiency = 1 / (question.estimated_tokens / 10)  # mildly prefer short questions
    return priority * topic * token_efficiency


def _validate(
    duration_budget_seconds: float,
    priority_weights: Mapping[str, float],
    topic_weights: Mapping[str, float],
    max_items: int,
) -> None:
    if duration_budget_seconds <= 0:
        raise InvalidRequestError("duration budget must be positive", "max_duration_seconds")
    if max_items <= 0:
        raise InvalidRequestError("max_items must be positive", "max_items")
    for field, weights in (
        ("priority_weights", priority_weights),
        ("topic_preferences", topic_weights),
    ):
        for key, weight in weights.items():
            if weight < 0:
                raise InvalidRequestError(f"negative weight for {key!r}", field)


def _select(
    scored: Sequence[CandidateQuestion],
    token_budget: int,
    max_items: int,
) -> list[CandidateQuestion]:
    selected: list[CandidateQuestion] = []
    topic_counts: dict[str, int] = {}
    remaining = token_budget

    for question in scored:
        if question.estimated_tokens > remaining:
            continue

        topic_count = topic_counts.get(question.topic_category, 0)
        if len(selected) > 2 and topic_count >= math.ceil(MAX_TOPIC_SHARE * len(selected)):
            continue
        # A third question of a single topic would exceed ceil(60%) of three.
        if len(selected) == 2 and topic_count == 2:
            continue

        selected.append(question)
        topic_counts[question.topic_category] = topic_count + 1
        remaining -= question.estimated_tokens

        if len(selected) >= max_items or remaining < MIN_USEFUL_TOKENS:
            break

    return selected


def interleave_topics(questions: Sequence[CandidateQuestion]) -> list[SelectedQuestion]:
    """Round-robin across topic groups for conversational flow.

    Groups keep the order in which their topic was first accepted, and each
    group keeps acceptance order.
    """
    groups: dict[str, list[CandidateQuestion]] = {}
    for question in questions:
        groups.setdefault(question.topic_category, []).append(question)

    ordered: list[SelectedQuestion] = []
    depth = max((len(group) for group in groups.values()), default=0)
    for i in range(depth):
        for group in groups.values():
            if i < len(group):
                q = group[i]
                ordered.append(
                    SelectedQuestion(
                        question_id=q.question_id,
                        priority=q.priority,
                        estimated_tokens=q.estimated_tokens,
                        topic_category=q.topic_category,
                        order=len(ordered) + 1,
                    )
                )
    return ordered


def priority_score(
    questions: Sequence[SelectedQuestion], priority_weights: Mapping[str, float]
) -> float:
    if not questions:
        return 0.0
    total = sum(q.priority * priority_weights.get(q.question_id, 1.0) for q in questions)
    return total / len(questions)


def group_balance(questions: Sequence[SelectedQuestion]) -> dict[str, float]:
    counts: dict[str, int] = {}
    for q in questions:
        counts[q.topic_category] = counts.get(q.topic_category, 0) + 1
    total = len(questions)
    return {topic: round(count / total, 2) for topic, count in counts.items()}


def optimize(
    candidates: Sequence[CandidateQuestion],
    duration_budget_seconds: float,
    priority_weights: Mapping[str, float] | None = None,
    topic_weights: Mapping[str, float] | None = None,
    max_items: int = DEFAULT_MAX_ITEMS,
    *,
    cache_key: str = "",
    generated_at: float = 0.0,
    ttl: int = 0,
) -> OptimizedCombination:
    """Select and order questions for a call.

    Args:
        candidates: Candidate questions, in record-store order
        duration_budget_seconds: Maximum call duration
        priority_weights: Per-question priority override (defaults to base priority)
        topic_weights: Per-topic multiplier (defaults to 1.0)
        max_items: Hard cap on selected questions
        cache_key, generated_at, ttl: Cache metadata copied onto the result

    Returns:
        OptimizedCombination whose total tokens never exceed the budget

    Raises:
        InvalidRequestError: On a non-positive budget or negative weights
    """
    priority_weights = priority_weights or {}
    topic_weights = topic_weights or {}
    _validate(duration_budget_seconds, priority_weights, topic_weights, max_items)

    token_budget = duration_to_tokens(duration_budget_seconds)

    # sorted() is stable, so equal scores keep candidate order
    scored = sorted(
        candidates,
        key=lambda q: score_question(q, priority_weights, topic_weights),
        reverse=True,
    )
    accepted = _select(scored, token_budget, max_items)
    ordered = interleave_topics(accepted)

    total_tokens = sum(q.estimated_tokens for q in ordered)
    return OptimizedCombination(
        questions=ordered,
        total_tokens=total_tokens,
        estimated_duration=estimate_duration(total_tokens, len(ordered)),
        priority_score=priority_score(ordered, priority_weights),
        group_balance=group_balance(ordered),
        cache_key=cache_key,
        generated_at=generated_at,
        ttl=ttl,
    )
