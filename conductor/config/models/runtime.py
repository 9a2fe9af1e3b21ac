"""Default execution policy configuration."""

from pydantic import BaseModel, Field

from conductor.domain.policy import ExecutionPolicy


class RuntimeConfig(BaseModel):
    """Defaults applied when a run does not supply its own policy.

    TOML has no null, so zero disables the timeout, the tool-call cap and
    the history caps.
    """

    timeout_seconds: float = Field(default=0, ge=0, description="Attempt timeout, 0 for none")
    retries: int = Field(default=0, ge=0, description="Extra attempts after a failure")
    propagate_cancellation: bool = Field(
        default=True, description="Cancel in-flight attempts when the caller is cancelled"
    )
    max_tool_calls: int = Field(default=0, ge=0, description="Tool-call cap, 0 for none")
    max_history_messages: int = Field(
        default=0, ge=0, description="History message cap, 0 for none"
    )
    max_history_tokens: int = Field(default=0, ge=0, description="History token cap, 0 for none")
    summary_hook_name: str | None = Field(default=None, description="Default summary hook")

    def default_policy(self) -> ExecutionPolicy:
        """Build the execution policy these defaults describe."""
        return ExecutionPolicy(
            timeout=self.timeout_seconds or None,
            retries=self.retries,
            propagate_cancellation=self.propagate_cancellation,
            max_tool_calls=self.max_tool_calls or None,
            max_history_messages=self.max_history_messages or None,
            max_history_tokens=self.max_history_tokens or None,
            summary_hook_name=self.summary_hook_name,
        )
