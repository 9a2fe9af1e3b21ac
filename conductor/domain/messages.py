"""Conversation message models."""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from conductor.domain.opaque import OpaqueValue


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class MessageRole(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:12]}", description="Call ID")
    name: str = Field(..., description="Requested tool name")
    arguments: OpaqueValue = Field(
        default_factory=OpaqueValue, description="Arguments for the tool"
    )


class Message(BaseModel):
    """Immutable conversation message.

    Insertion order is the only ordering; there are no sequence numbers.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    role: MessageRole = Field(..., description="Message author")
    content: str = Field(default="", description="Text content")
    tool_calls: tuple[ToolCall, ...] = Field(
        default=(), description="Tool calls requested by an assistant message"
    )
    tool_call_id: str | None = Field(
        default=None, description="Call answered by a tool message"
    )
    name: str | None = Field(default=None, description="Tool name for tool messages")
    payload: OpaqueValue | None = Field(
        default=None, description="Optional structured payload"
    )
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: tuple[ToolCall, ...] | list[ToolCall] = ()
    ) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(
        cls,
        content: str,
        *,
        tool_call_id: str,
        name: str,
        payload: OpaqueValue | None = None,
    ) -> "Message":
        return cls(
            role=MessageRole.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            payload=payload,
        )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
