"""Structured JSON logging.

Provides:
- JSON-formatted logs for log aggregation systems (ELK, Loki, etc.)
- Business context and request id propagation via context variables
- Configurable log levels and formats

Usage:
    from callflow.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="INFO")

    with LogContext(business_context_id="acme", request_id="r-1"):
        logger.info("Optimizing")  # Includes business_context_id and request_id
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
business_context_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "business_context_id", default=""
)

# Attributes every LogRecord carries; anything else arrived through extra={...}.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Context variable name -> short label used by the console formatter.
_CONTEXT_LABELS = {"business_context_id": "biz", "request_id": "req"}


def bound_context() -> dict[str, str]:
    """Correlation fields currently bound by LogContext."""
    values = {
        "business_context_id": business_context_var.get(),
        "request_id": request_id_var.get(),
    }
    return {name: value for name, value in values.items() if value}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying bound context and extra fields.

    Example:
    {"timestamp": "2026-01-10T12:34:56.789+00:00", "level": "INFO",
     "logger": "callflow.cache.orchestrator", "message": "Cache miss",
     "business_context_id": "acme", "cache_type": "combinations"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            **bound_context(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        # Values orjson cannot encode natively fall back to str().
        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Single-line formatter for interactive use.

    2026-01-10 12:34:56 | INFO     | callflow.engine | Cache hit | biz=acme
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s | %(_level)s | %(name)s | %(message)s%(_context)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        record.__dict__["_level"] = level

        context = bound_context()
        if "request_id" in context:
            context["request_id"] = context["request_id"][:8]
        pairs = " ".join(f"{_CONTEXT_LABELS[name]}={value}" for name, value in context.items())
        record.__dict__["_context"] = f" | {pairs}" if pairs else ""

        return super().format(record)


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Configure application-wide logging.

    Args:
        json_format: Use JSON format (recommended for production)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_colors: Use ANSI colors in console format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(use_colors=use_colors))

    root_logger.addHandler(handler)

    # redis-py logs every retried connection attempt
    logging.getLogger("redis").setLevel(logging.WARNING)


class LogContext:
    """Context manager for adding temporary log context.

    Usage:
        with LogContext(business_context_id="acme"):
            logger.info("Evaluating triggers")  # Includes business_context_id
    """

    _VARS: dict[str, contextvars.ContextVar[str]] = {
        "request_id": request_id_var,
        "business_context_id": business_context_var,
    }

    def __init__(self, **kwargs: str) -> None:
        self.extra = kwargs
        self._tokens: dict[str, contextvars.Token[str]] = {}

    def __enter__(self) -> LogContext:
        for key, value in self.extra.items():
            var = self._VARS.get(key)
            if var is not None:
                self._tokens[key] = var.set(value)
        return self

    def __exit__(self, *args: Any) -> None:
        for key, token in self._tokens.items():
            self._VARS[key].reset(token)
        self._tokens.clear()
