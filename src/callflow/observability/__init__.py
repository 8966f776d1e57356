"""Observability: structured logging and Prometheus metrics."""

from callflow.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    business_context_var,
    configure_logging,
    request_id_var,
)
from callflow.observability.metrics import MetricsRegistry, NoOpMetric

__all__ = [
    # Logging
    "configure_logging",
    "ConsoleFormatter",
    "JsonFormatter",
    "LogContext",
    "business_context_var",
    "request_id_var",
    # Metrics
    "MetricsRegistry",
    "NoOpMetric",
]
