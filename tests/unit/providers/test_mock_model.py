"""Tests for MockModel."""

import pytest

from conductor.domain import Message
from conductor.providers import (
    MockModel,
    ModelDelta,
    ModelRequestOptions,
    ModelResponse,
    TokenUsage,
    tool_call,
)


@pytest.fixture
def transcript() -> list[Message]:
    return [Message.system("be brief"), Message.user("hello there")]


class TestMockModelGenerate:
    """Tests for scripted generation."""

    @pytest.mark.asyncio
    async def test_replays_script_then_default(self, transcript: list[Message]) -> None:
        """Steps are consumed in order, then the default answer is used."""
        model = MockModel(["first", ModelResponse(content="second")], default_response="later")
        options = ModelRequestOptions()

        assert (await model.generate(transcript, options)).content == "first"
        assert (await model.generate(transcript, options)).content == "second"
        assert (await model.generate(transcript, options)).content == "later"

    @pytest.mark.asyncio
    async def test_raises_scripted_exception(self, transcript: list[Message]) -> None:
        """Exception steps are raised."""
        model = MockModel([RuntimeError("provider down")])
        with pytest.raises(RuntimeError, match="provider down"):
            await model.generate(transcript, ModelRequestOptions())

    @pytest.mark.asyncio
    async def test_callable_step_sees_transcript(self, transcript: list[Message]) -> None:
        """Callable steps build the response from the transcript."""
        model = MockModel([lambda t: ModelResponse(content=f"{len(t)} messages")])
        response = await model.generate(transcript, ModelRequestOptions())
        assert response.content == "2 messages"

    @pytest.mark.asyncio
    async def test_records_calls_and_usage(self, transcript: list[Message]) -> None:
        """Calls are recorded and usage is estimated when missing."""
        model = MockModel(["abcdefgh"])
        response = await model.generate(transcript, ModelRequestOptions())

        assert model.transcripts == [transcript]
        assert response.usage == TokenUsage(input_tokens=2 + 2, output_tokens=2)

    @pytest.mark.asyncio
    async def test_tool_call_response(self, transcript: list[Message]) -> None:
        """Scripted tool calls are returned as-is."""
        call = tool_call("search", {"q": "x"}, call_id="call_1")
        model = MockModel([ModelResponse(tool_calls=[call])])
        response = await model.generate(transcript, ModelRequestOptions())

        assert response.tool_calls == [call]
        assert response.tool_calls[0].arguments.decode() == {"q": "x"}


class TestMockModelStream:
    """Tests for streamed generation."""

    @pytest.mark.asyncio
    async def test_streams_chunks_then_response(self, transcript: list[Message]) -> None:
        """Deltas come first, then exactly one final response."""
        model = MockModel(["Hello world"], stream_chunks=["Hel", "lo", " world"])
        items = [item async for item in model.stream(transcript, ModelRequestOptions())]

        assert [i.text for i in items if isinstance(i, ModelDelta)] == ["Hel", "lo", " world"]
        assert isinstance(items[-1], ModelResponse)
        assert items[-1].content == "Hello world"

    @pytest.mark.asyncio
    async def test_streams_fixed_size_chunks(self, transcript: list[Message]) -> None:
        """Without explicit chunks the text is split by size."""
        model = MockModel(["abcdefg"], stream_chunk_size=3)
        items = [item async for item in model.stream(transcript, ModelRequestOptions())]
        assert [i.text for i in items if isinstance(i, ModelDelta)] == ["abc", "def", "g"]
