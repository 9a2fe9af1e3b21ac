"""Scripted model for testing and local development."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

from conductor.domain.messages import Message, ToolCall
from conductor.domain.opaque import OpaqueValue
from conductor.providers.model import (
    Model,
    ModelDelta,
    ModelRequestOptions,
    ModelResponse,
    TokenUsage,
)

ScriptStep = ModelResponse | str | Exception | Callable[[list[Message]], ModelResponse]


def tool_call(name: str, arguments: Any = None, call_id: str | None = None) -> ToolCall:
    """Build a ToolCall for a scripted response."""
    kwargs: dict[str, Any] = {"name": name, "arguments": OpaqueValue.encode(arguments or {})}
    if call_id is not None:
        kwargs["id"] = call_id
    return ToolCall(**kwargs)


class MockModel(Model):
    """Model that replays a script of responses.

    Each call consumes the next step. A step may be a ModelResponse, plain
    text, an exception to raise, or a callable receiving the transcript.
    Once the script runs out, the default response is returned.
    """

    def __init__(
        self,
        script: list[ScriptStep] | None = None,
        default_response: str = "Mock response",
        stream_chunks: list[str] | None = None,
        stream_chunk_size: int = 10,
        delay: float = 0.0,
    ):
        """Initialize mock model.

        Args:
            script: Responses to return in order
            default_response: Text returned once the script is exhausted
            stream_chunks: Exact deltas to stream for text responses
            stream_chunk_size: Characters per delta when stream_chunks is unset
            delay: Seconds to sleep before each response
        """
        self._script = list(script or [])
        self._default_response = default_response
        self._stream_chunks = stream_chunks
        self._stream_chunk_size = stream_chunk_size
        self._delay = delay
        self._call_history: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Transcripts and options of every call, for test assertions."""
        return self._call_history

    @property
    def transcripts(self) -> list[list[Message]]:
        return [call["transcript"] for call in self._call_history]

    def enqueue(self, *steps: ScriptStep) -> None:
        self._script.extend(steps)

    async def generate(
        self,
        transcript: list[Message],
        options: ModelRequestOptions,
    ) -> ModelResponse:
        self._call_history.append({"transcript": list(transcript), "options": options})

        if self._delay:
            await asyncio.sleep(self._delay)

        step: ScriptStep = self._script.pop(0) if self._script else self._default_response
        if isinstance(step, Exception):
            raise step
        if callable(step) and not isinstance(step, ModelResponse):
            response = step(transcript)
        elif isinstance(step, str):
            response = ModelResponse(content=step, finish_reason="stop")
        else:
            response = step

        if response.usage is None:
            response = response.model_copy(
                update={
                    "usage": TokenUsage(
                        input_tokens=sum(len(m.content) // 4 for m in transcript),
                        output_tokens=len(response.content) // 4,
                    )
                }
            )
        return response

    async def stream(
        self,
        transcript: list[Message],
        options: ModelRequestOptions,
    ) -> AsyncIterator[ModelDelta | ModelResponse]:
        response = await self.generate(transcript, options)

        if response.content:
            if self._stream_chunks is not None and "".join(self._stream_chunks) == response.content:
                chunks = self._stream_chunks
            else:
                size = self._stream_chunk_size
                chunks = [
                    response.content[i : i + size] for i in range(0, len(response.content), size)
                ]
            for chunk in chunks:
                yield ModelDelta(text=chunk)
                await asyncio.sleep(0)

        yield response
