"""Domain models for agents, sessions, runs and hooks."""

from conductor.domain.agent import Agent, AgentSessionContext
from conductor.domain.hooks import (
    Hook,
    HookContext,
    PostHookFunc,
    PreHookFunc,
    RegisteredPostHook,
    RegisteredPreHook,
    RegisteredSummaryHook,
    SummaryHookContext,
    SummaryHookFunc,
)
from conductor.domain.messages import Message, MessageRole, ToolCall, utc_now
from conductor.domain.opaque import OpaqueValue
from conductor.domain.policy import AgentRunOptions, ExecutionPolicy, GenerationOptions
from conductor.domain.run import (
    Run,
    RunDelta,
    RunFinished,
    RunMetrics,
    RunRestarted,
    RunStatus,
    RunStreamEvent,
    ToolExecution,
)
from conductor.domain.session import (
    Session,
    SessionFilter,
    SessionSortField,
    StorageStats,
)

__all__ = [
    "Agent",
    "AgentRunOptions",
    "AgentSessionContext",
    "ExecutionPolicy",
    "GenerationOptions",
    "Hook",
    "HookContext",
    "Message",
    "MessageRole",
    "OpaqueValue",
    "PostHookFunc",
    "PreHookFunc",
    "RegisteredPostHook",
    "RegisteredPreHook",
    "RegisteredSummaryHook",
    "Run",
    "RunDelta",
    "RunFinished",
    "RunMetrics",
    "RunRestarted",
    "RunStatus",
    "RunStreamEvent",
    "Session",
    "SessionFilter",
    "SessionSortField",
    "StorageStats",
    "SummaryHookContext",
    "SummaryHookFunc",
    "ToolCall",
    "ToolExecution",
    "utc_now",
]
