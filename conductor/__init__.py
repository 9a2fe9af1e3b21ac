"""Conductor: an agent execution runtime.

Runs agents against a model and a set of tools, with pre/post hooks,
timeout/retry/cancellation policies, context-window compaction and
durable run records.

Usage:
    from conductor import Agent, AgentCenter

    center = AgentCenter()
    await center.register_model(model, "default")
    await center.register_agent(Agent(id="helper", name="Helper", model_name="default"))
    session = await center.create_session("helper", user_id="u-1")
    run = await center.run(session, "Hello")
"""

from conductor.domain import (
    Agent,
    AgentRunOptions,
    AgentSessionContext,
    ExecutionPolicy,
    GenerationOptions,
    HookContext,
    Message,
    MessageRole,
    OpaqueValue,
    Run,
    RunDelta,
    RunFinished,
    RunRestarted,
    RunStatus,
    Session,
    SummaryHookContext,
    ToolCall,
    ToolExecution,
)
from conductor.errors import ConductorError, ErrorCode
from conductor.providers import MockModel, Model, ModelResponse
from conductor.runtime import AgentCenter, AgentConfiguration
from conductor.tools import FunctionTool, Tool, tool

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentCenter",
    "AgentConfiguration",
    "AgentRunOptions",
    "AgentSessionContext",
    "ConductorError",
    "ErrorCode",
    "ExecutionPolicy",
    "FunctionTool",
    "GenerationOptions",
    "HookContext",
    "Message",
    "MessageRole",
    "MockModel",
    "Model",
    "ModelResponse",
    "OpaqueValue",
    "Run",
    "RunDelta",
    "RunFinished",
    "RunRestarted",
    "RunStatus",
    "Session",
    "SummaryHookContext",
    "Tool",
    "ToolCall",
    "ToolExecution",
    "tool",
]
