"""Configuration section models."""

from conductor.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
)
from conductor.config.models.runtime import RuntimeConfig
from conductor.config.models.storage import StorageConfig

__all__ = [
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    "RuntimeConfig",
    "StorageConfig",
]
