"""Model capability interface and its request/response types.

A Model turns a transcript into either a final assistant message or a set
of tool-call requests. How it does so, and which provider it talks to, is
up to the implementation.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel, Field

from conductor.domain.messages import Message, ToolCall
from conductor.domain.policy import GenerationOptions


class TokenUsage(BaseModel):
    """Token usage statistics for one model call."""

    input_tokens: int = Field(default=0, ge=0, description="Tokens in the transcript")
    output_tokens: int = Field(default=0, ge=0, description="Tokens generated")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ToolSpec(BaseModel):
    """Tool description offered to the model."""

    name: str = Field(..., description="Tool name")
    description: str = Field(default="", description="What the tool does")
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the arguments",
    )


class ModelRequestOptions(BaseModel):
    """Everything besides the transcript that a model call receives."""

    generation: GenerationOptions = Field(
        default_factory=GenerationOptions, description="Sampling parameters"
    )
    tools: list[ToolSpec] = Field(default_factory=list, description="Tools the model may call")
    max_tool_calls: int | None = Field(default=None, description="Run-wide tool-call cap")


class ModelResponse(BaseModel):
    """Complete result of one model call."""

    content: str = Field(default="", description="Generated text")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Requested tool calls")
    usage: TokenUsage | None = Field(default=None, description="Token usage")
    finish_reason: str | None = Field(default=None, description="Why generation stopped")

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls

    def to_message(self) -> Message:
        return Message.assistant(self.content, self.tool_calls)


class ModelDelta(BaseModel):
    """Incremental text produced while streaming."""

    text: str = Field(..., description="Text fragment")


class Model(ABC):
    """Language-model capability."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def generate(
        self,
        transcript: list[Message],
        options: ModelRequestOptions,
    ) -> ModelResponse:
        """Produce a final message or tool-call requests for the transcript."""
        pass

    async def stream(
        self,
        transcript: list[Message],
        options: ModelRequestOptions,
    ) -> AsyncIterator[ModelDelta | ModelResponse]:
        """Stream deltas, then exactly one ModelResponse.

        The default implementation generates the whole response and emits
        its text as a single delta.
        """
        response = await self.generate(transcript, options)
        if response.content:
            yield ModelDelta(text=response.content)
        yield response
