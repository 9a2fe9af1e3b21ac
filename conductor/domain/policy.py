"""Per-run execution policy and options."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExecutionPolicy(BaseModel):
    """Timeout, retry, cancellation and tool-call contract for one run.

    Defaults: no timeout, no retries, cancellation propagates, no tool-call
    cap, full history.
    """

    model_config = ConfigDict(frozen=True)

    timeout: float | None = Field(default=None, gt=0, description="Seconds per attempt")
    retries: int = Field(default=0, description="Extra attempts after a failure")
    propagate_cancellation: bool = Field(
        default=True,
        description="Cancel the in-flight attempt when the caller is cancelled",
    )
    max_tool_calls: int | None = Field(
        default=None, ge=0, description="Hard cap on tool executions per run"
    )
    max_history_messages: int | None = Field(
        default=None, ge=0, description="Most history messages sent to the model"
    )
    max_history_tokens: int | None = Field(
        default=None, ge=0, description="Estimated token budget for history"
    )
    summary_hook_name: str | None = Field(
        default=None, description="Summary hook overriding the agent's"
    )

    @field_validator("retries", mode="before")
    @classmethod
    def clamp_retries(cls, value: Any) -> Any:
        if isinstance(value, int) and value < 0:
            return 0
        return value

    @property
    def max_attempts(self) -> int:
        return self.retries + 1


class GenerationOptions(BaseModel):
    """Sampling parameters passed through to the model."""

    model_config = ConfigDict(frozen=True)

    temperature: float | None = Field(
        default=None, ge=0.0, le=2.0, description="Sampling temperature"
    )
    max_tokens: int | None = Field(default=None, ge=1, description="Maximum output tokens")
    top_p: float | None = Field(default=None, ge=0.0, le=1.0, description="Nucleus sampling")
    stop: tuple[str, ...] = Field(default=(), description="Stop sequences")
    extra: dict[str, Any] = Field(default_factory=dict, description="Provider-specific options")


class AgentRunOptions(BaseModel):
    """Per-run generation options and tool filters.

    The block-list always wins over the allow-list.
    """

    model_config = ConfigDict(frozen=True)

    generation: GenerationOptions = Field(
        default_factory=GenerationOptions, description="Sampling parameters"
    )
    allowed_tool_names: frozenset[str] | None = Field(
        default=None, description="Restrict the run to these tools"
    )
    blocked_tool_names: frozenset[str] = Field(
        default_factory=frozenset, description="Never offer or execute these tools"
    )

    def permits(self, tool_name: str) -> bool:
        if tool_name in self.blocked_tool_names:
            return False
        return self.allowed_tool_names is None or tool_name in self.allowed_tool_names
