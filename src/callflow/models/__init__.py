"""Domain models for the callflow engine."""

from callflow.models.cache import (
    BusinessCacheStats,
    CacheMetrics,
    CacheMetricsSnapshot,
    CacheStats,
    HealthReport,
    InvalidationReport,
)
from callflow.models.questions import (
    CandidateQuestion,
    CombinationRequest,
    OptimizedCombination,
    PreWarmScenario,
    SelectedQuestion,
)
from callflow.models.triggers import (
    CachedEvaluation,
    CompiledCheck,
    CompiledEvaluator,
    Comparison,
    ConditionOperator,
    DynamicTrigger,
    EvaluationOutcome,
    Membership,
    Range,
    TriggerCacheEntry,
    TriggerCondition,
    TriggerEvaluationResult,
)

__all__ = [
    # Questions
    "CandidateQuestion",
    "CombinationRequest",
    "OptimizedCombination",
    "PreWarmScenario",
    "SelectedQuestion",
    # Triggers
    "CachedEvaluation",
    "CompiledCheck",
    "CompiledEvaluator",
    "Comparison",
    "ConditionOperator",
    "DynamicTrigger",
    "EvaluationOutcome",
    "Membership",
    "Range",
    "TriggerCacheEntry",
    "TriggerCondition",
    "TriggerEvaluationResult",
    # Cache
    "BusinessCacheStats",
    "CacheMetrics",
    "CacheMetricsSnapshot",
    "CacheStats",
    "HealthReport",
    "InvalidationReport",
]
