"""Pure computation: the combination optimizer and the trigger compiler/executor."""

from callflow.core.compiler import compile_condition, compile_trigger
from callflow.core.executor import execute
from callflow.core.optimizer import duration_to_tokens, estimate_duration, optimize

__all__ = [
    "compile_condition",
    "compile_trigger",
    "duration_to_tokens",
    "estimate_duration",
    "execute",
    "optimize",
]
