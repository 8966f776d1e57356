"""Callflow: question combination optimizer and trigger engine with Redis caching."""

from callflow.engine import CallflowEngine

__version__ = "0.1.0"

__all__ = ["CallflowEngine", "__version__"]
