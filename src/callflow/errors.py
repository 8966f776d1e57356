"""Error taxonomy for the callflow engine.

- CacheUnavailableError: the cache backend could not be reached. Always
  recovered locally by computing without the cache.
- InvalidRequestError: caller error, rejected before any computation.
- TriggerNotFoundError: the record store has no such trigger.
- TriggerCompilationError / TriggerEvaluationError: a single trigger could
  not be compiled or evaluated. Reported as not-triggered, never aborts a
  batch.
"""

from __future__ import annotations


class CallflowError(Exception):
    """Base class for engine errors."""


class CacheUnavailableError(CallflowError):
    """Raised by the cache store when the backend is unreachable."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unavailable"
        super().__init__(f"cache {operation} failed ({detail})")
        self.operation = operation
        self.cause = cause


class InvalidRequestError(CallflowError):
    """Raised when a request fails validation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class TriggerCompilationError(CallflowError):
    """Raised when trigger conditions cannot be compiled."""

    def __init__(self, message: str, condition_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.condition_id = condition_id


class TriggerEvaluationError(CallflowError):
    """Raised when a compiled trigger cannot be applied to a record."""


class TriggerNotFoundError(CallflowError):
    """Raised when the record store has no definition for a trigger id."""

    def __init__(self, trigger_id: str):
        super().__init__(f"trigger {trigger_id!r} not found")
        self.trigger_id = trigger_id
