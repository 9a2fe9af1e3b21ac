"""Hook configuration and context models."""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from conductor.domain.agent import Agent, AgentSessionContext
from conductor.domain.messages import Message
from conductor.domain.run import Run


class Hook(BaseModel):
    """Hook configuration."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Name agents use to reference the hook")
    blocking: bool = Field(
        default=True,
        description="Await the hook in-line instead of launching it in the background",
    )


class HookContext(BaseModel):
    """Mutable context handed to pre- and post-hooks.

    Blocking pre-hooks may rewrite user_message; the rewritten text is what
    later hooks and the model see. Non-blocking hooks receive a copy.
    """

    model_config = ConfigDict(frozen=False, validate_assignment=True)

    agent: Agent = Field(..., description="Agent being run")
    session: AgentSessionContext = Field(..., description="Conversation being served")
    user_message: str = Field(..., description="Outbound user message")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form hook data")


class SummaryHookContext(BaseModel):
    """What a summary hook sees when history is trimmed."""

    model_config = ConfigDict(frozen=True)

    agent: Agent = Field(..., description="Agent being run")
    session: AgentSessionContext = Field(..., description="Conversation being served")
    existing_summary: str | None = Field(default=None, description="Current stored summary")
    dropped_messages: list[Message] = Field(..., description="Messages removed from the window")
    retained_messages: list[Message] = Field(..., description="Messages kept in the window")
    max_history_messages: int | None = Field(default=None, description="Active message cap")
    max_history_tokens: int | None = Field(default=None, description="Active token cap")


PreHookFunc = Callable[[HookContext], Awaitable[None]]
# Post-hooks get a copy of the run. Blocking ones see it still RUNNING;
# non-blocking ones see the finalized run.
PostHookFunc = Callable[[HookContext, Run], Awaitable[None]]
SummaryHookFunc = Callable[[SummaryHookContext], Awaitable[str | None]]


class RegisteredPreHook(BaseModel):
    """Pre-hook configuration bound to its implementation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config: Hook
    func: PreHookFunc

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def blocking(self) -> bool:
        return self.config.blocking


class RegisteredPostHook(BaseModel):
    """Post-hook configuration bound to its implementation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config: Hook
    func: PostHookFunc

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def blocking(self) -> bool:
        return self.config.blocking


class RegisteredSummaryHook(BaseModel):
    """Summary hook bound to its implementation.

    Summary hooks are always awaited in-line.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    func: SummaryHookFunc
