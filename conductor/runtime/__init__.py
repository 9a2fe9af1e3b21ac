"""Agent execution runtime."""

from conductor.runtime.center import AgentCenter
from conductor.runtime.configuration import (
    AgentConfiguration,
    ToolGroupConfig,
    validate_configuration,
)
from conductor.runtime.context_window import (
    ContextWindow,
    ContextWindowManager,
    estimate_tokens,
    split_history,
)
from conductor.runtime.hooks import BackgroundTaskRegistry, HookFailure, HookPipeline
from conductor.runtime.loop import AgentLoop, LoopState
from conductor.runtime.policy import ExecutionPolicyEnforcer, is_retryable
from conductor.runtime.registry import DescriptorRegistry

__all__ = [
    "AgentCenter",
    "AgentConfiguration",
    "AgentLoop",
    "BackgroundTaskRegistry",
    "ContextWindow",
    "ContextWindowManager",
    "DescriptorRegistry",
    "ExecutionPolicyEnforcer",
    "HookFailure",
    "HookPipeline",
    "LoopState",
    "ToolGroupConfig",
    "estimate_tokens",
    "is_retryable",
    "split_history",
    "validate_configuration",
]
