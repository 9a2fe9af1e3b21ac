"""Observability: structured logging, metrics and run lifecycle events."""

from conductor.observability.events import (
    LoggingObserver,
    RecordingObserver,
    RunEvent,
    RunEventType,
    RunObserver,
)
from conductor.observability.logging import bound_context, get_logger, setup_logging
from conductor.observability.metrics import setup_metrics

__all__ = [
    "LoggingObserver",
    "RecordingObserver",
    "RunEvent",
    "RunEventType",
    "RunObserver",
    "bound_context",
    "get_logger",
    "setup_logging",
    "setup_metrics",
]
