"""Run record models.

A Run is the durable record of one agent invocation: the messages it
produced, every tool call it made and how it ended.
"""

from datetime import datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from conductor.domain.messages import Message, MessageRole, utc_now
from conductor.domain.opaque import OpaqueValue
from conductor.errors import InvalidUTF8DataError, NoDataError

T = TypeVar("T")


class RunStatus(str, Enum):
    """Lifecycle state of a run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class RunMetrics(BaseModel):
    """Token usage and timing for one run."""

    input_tokens: int = Field(default=0, ge=0, description="Prompt tokens across model calls")
    output_tokens: int = Field(default=0, ge=0, description="Completion tokens across model calls")
    total_tokens: int = Field(default=0, ge=0, description="Sum of input and output tokens")
    duration_ms: float = Field(default=0.0, ge=0, description="Wall-clock duration")
    cost: float | None = Field(default=None, description="Optional provider cost")


class ToolExecution(BaseModel):
    """Record of one tool invocation inside a run."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    tool_name: str = Field(..., description="Executed tool")
    tool_call_id: str = Field(..., description="Model call this execution answers")
    arguments: OpaqueValue = Field(default_factory=OpaqueValue, description="Call arguments")
    result: OpaqueValue | None = Field(default=None, description="Result on success")
    error: str | None = Field(default=None, description="Error message on failure")
    duration_ms: float = Field(default=0.0, ge=0, description="Execution time")
    timestamp: datetime = Field(default_factory=utc_now, description="Start time")

    @property
    def succeeded(self) -> bool:
        return self.error is None


class Run(BaseModel):
    """One agent invocation.

    Created in RUNNING status, finalized exactly once, persisted, and not
    mutated afterwards.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    agent_id: str = Field(..., description="Agent that ran")
    session_id: UUID = Field(..., description="Owning session")
    user_id: str = Field(..., description="User who triggered the run")
    parent_run_id: UUID | None = Field(default=None, description="Parent run, if any")
    messages: list[Message] = Field(
        default_factory=list, description="Messages produced during this run"
    )
    raw_content: bytes | None = Field(default=None, description="Final content as bytes")
    status: RunStatus = Field(default=RunStatus.RUNNING, description="Lifecycle state")
    model_name: str | None = Field(default=None, description="Model used")
    model_provider: str | None = Field(default=None, description="Provider of the model")
    tool_executions: list[ToolExecution] = Field(
        default_factory=list, description="Tool calls in request order"
    )
    metrics: RunMetrics | None = Field(default=None, description="Usage and timing")
    error: str | None = Field(default=None, description="Failure message for failed runs")
    session_data_updates: dict[str, OpaqueValue] | None = Field(
        default=None, description="Session data written by this run"
    )
    metadata: dict[str, OpaqueValue] = Field(default_factory=dict, description="Free-form metadata")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")

    def finalize(self, status: RunStatus, error: str | None = None) -> None:
        """Move the run out of RUNNING.

        Raises:
            ValueError: If the run is already terminal or status is RUNNING
        """
        if self.status.is_terminal:
            raise ValueError(f"Run {self.id} is already {self.status.value}")
        if status == RunStatus.RUNNING:
            raise ValueError("Cannot finalize a run to running")
        self.status = status
        if error is not None:
            self.error = error

    @property
    def user_message(self) -> Message | None:
        for message in self.messages:
            if message.role == MessageRole.USER:
                return message
        return None

    @property
    def final_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == MessageRole.ASSISTANT and not message.has_tool_calls:
                return message
        return None

    @property
    def content(self) -> str | None:
        """Final assistant text, when the run produced one."""
        final = self.final_message
        return final.content if final else None

    def as_text(self) -> str:
        """Decode raw content as UTF-8 text.

        Raises:
            NoDataError: If no raw content was stored
            InvalidUTF8DataError: If the bytes are not valid UTF-8
        """
        if self.raw_content is None:
            raise NoDataError()
        try:
            return self.raw_content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUTF8DataError() from e

    def decoded(self, target: type[T]) -> T:
        """Decode raw content as JSON into the given type.

        Raises:
            NoDataError: If no raw content was stored
            InvalidUTF8DataError: If the bytes are not valid UTF-8
            InvalidJSONResponseError: If the content does not match the type
        """
        if self.raw_content is None:
            raise NoDataError()
        try:
            text = self.raw_content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidUTF8DataError() from e
        return OpaqueValue(json_text=text).decode_as(target)

    def set_metadata(self, key: str, value: Any) -> None:
        self.metadata = {**self.metadata, key: OpaqueValue.encode(value)}


class RunDelta(BaseModel):
    """Text streamed while a run is in progress."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Text fragment")


class RunRestarted(BaseModel):
    """Marks a retry: text streamed before it belongs to a failed attempt."""

    model_config = ConfigDict(frozen=True)

    attempt: int = Field(..., ge=2, description="Number of the attempt now starting")


class RunFinished(BaseModel):
    """Last item of a run stream."""

    model_config = ConfigDict(frozen=True)

    run: Run = Field(..., description="The completed, persisted run")


RunStreamEvent = RunDelta | RunRestarted | RunFinished
