"""Model capability interface and reference implementations."""

from conductor.providers.mock import MockModel, tool_call
from conductor.providers.model import (
    Model,
    ModelDelta,
    ModelRequestOptions,
    ModelResponse,
    TokenUsage,
    ToolSpec,
)

__all__ = [
    "MockModel",
    "Model",
    "ModelDelta",
    "ModelRequestOptions",
    "ModelResponse",
    "TokenUsage",
    "ToolSpec",
    "tool_call",
]
