"""Agent-model-tool iteration.

One AgentLoop instance drives one attempt:

    BUILDING -> AWAITING_MODEL -> (final message) -> DONE
                      ^                |
                      |         (tool calls)
                      |                v
              EXECUTING_TOOLS <- HANDLING_TOOL_CALLS

The loop has no iteration cap of its own. The policy's max_tool_calls is the
backstop; without it a model that never stops calling tools never stops.
"""

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from conductor.domain import (
    Agent,
    AgentRunOptions,
    ExecutionPolicy,
    Message,
    OpaqueValue,
    ToolCall,
    ToolExecution,
    utc_now,
)
from conductor.errors import (
    InvalidJSONResponseError,
    NoResponseFromModelError,
    ToolCallLimitExceededError,
    ToolInfrastructureError,
)
from conductor.observability import metrics
from conductor.observability.events import RunEventType
from conductor.observability.logging import get_logger
from conductor.providers.model import (
    Model,
    ModelDelta,
    ModelRequestOptions,
    ModelResponse,
    TokenUsage,
)
from conductor.tools.base import Tool

logger = get_logger(__name__)

EventSink = Callable[[RunEventType, dict[str, Any]], Awaitable[None]]
DeltaSink = Callable[[str], Awaitable[None]]

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n(.*?)\n?```$", re.DOTALL)


class LoopState(str, Enum):
    """States of one attempt."""

    BUILDING = "building"
    AWAITING_MODEL = "awaiting_model"
    HANDLING_TOOL_CALLS = "handling_tool_calls"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


def extract_json_text(content: str) -> str:
    """Strip surrounding whitespace and a Markdown code fence, if any."""
    text = content.strip()
    match = _FENCE_PATTERN.match(text)
    return match.group(1).strip() if match else text


def render_tool_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return OpaqueValue.encode(result).json_text


class AgentLoop:
    """Drives one attempt of the model-tool conversation.

    The loop keeps its progress in public attributes so a caller can record
    what happened even when the attempt fails.
    """

    def __init__(
        self,
        *,
        agent: Agent,
        model: Model,
        tools: dict[str, Tool],
        options: AgentRunOptions,
        policy: ExecutionPolicy,
        output_type: type | None = None,
        on_event: EventSink | None = None,
        on_delta: DeltaSink | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            agent: Agent being run
            model: Resolved model
            tools: Tools the model may call, already filtered by the run options
            options: Run options carrying generation parameters
            policy: Execution policy; only max_tool_calls is used here
            output_type: Type the final content must parse into, if any
            on_event: Receives lifecycle events
            on_delta: Receives streamed text; enables streaming when set
        """
        self._agent = agent
        self._model = model
        self._tools = tools
        self._options = options
        self._policy = policy
        self._output_type = output_type
        self._on_event = on_event
        self._on_delta = on_delta

        self.state = LoopState.BUILDING
        self.transcript: list[Message] = []
        self.messages: list[Message] = []
        self.tool_executions: list[ToolExecution] = []
        self.tool_call_count = 0
        self.model_calls = 0
        self.usage = TokenUsage()
        self.output: Any = None

    @property
    def final_message(self) -> Message | None:
        if self.state != LoopState.DONE or not self.messages:
            return None
        return self.messages[-1]

    async def run(self, history: list[Message], user_message: str) -> Message:
        """Run to completion and return the final assistant message.

        Raises:
            NoResponseFromModelError: If the model returns nothing
            ToolCallLimitExceededError: If the tool-call cap would be exceeded
            ToolInfrastructureError: If a tool reports an infrastructure failure
            InvalidJSONResponseError: If the final content does not fit output_type
        """
        self._build(history, user_message)
        await self._emit(RunEventType.TRANSCRIPT_BUILT, {"message_count": len(self.transcript)})

        while True:
            self.state = LoopState.AWAITING_MODEL
            response = await self._call_model()
            assistant = response.to_message()
            self.transcript.append(assistant)
            self.messages.append(assistant)

            if not response.tool_calls:
                self._parse_output(response.content)
                self.state = LoopState.DONE
                return assistant

            self.state = LoopState.HANDLING_TOOL_CALLS
            results = await self._handle_tool_calls(response.tool_calls)
            self.transcript.extend(results)
            self.messages.extend(results)

    def _build(self, history: list[Message], user_message: str) -> None:
        self.state = LoopState.BUILDING
        self.transcript = []
        if self._agent.instructions:
            self.transcript.append(Message.system(self._agent.instructions))
        self.transcript.extend(history)
        user = Message.user(user_message)
        self.transcript.append(user)
        self.messages = [user]
        self.tool_executions = []
        self.tool_call_count = 0

    def _request_options(self) -> ModelRequestOptions:
        return ModelRequestOptions(
            generation=self._options.generation,
            tools=[tool.spec() for tool in self._tools.values()],
            max_tool_calls=self._policy.max_tool_calls,
        )

    async def _call_model(self) -> ModelResponse:
        options = self._request_options()
        await self._emit(
            RunEventType.MODEL_REQUEST_SENDING,
            {"message_count": len(self.transcript), "tool_count": len(options.tools)},
        )
        transcript = list(self.transcript)
        if self._on_delta is None:
            response = await self._model.generate(transcript, options)
        else:
            response = await self._consume_stream(transcript, options)
        self.model_calls += 1

        if response.usage is not None:
            self.usage = TokenUsage(
                input_tokens=self.usage.input_tokens + response.usage.input_tokens,
                output_tokens=self.usage.output_tokens + response.usage.output_tokens,
            )
            metrics.record_tokens(
                self._model.provider_name,
                self._agent.model_name,
                response.usage.input_tokens,
                response.usage.output_tokens,
            )
        await self._emit(
            RunEventType.MODEL_RESPONSE_RECEIVED,
            {"content_length": len(response.content), "tool_calls": len(response.tool_calls)},
        )
        if response.is_empty:
            raise NoResponseFromModelError()
        return response

    async def _consume_stream(
        self, transcript: list[Message], options: ModelRequestOptions
    ) -> ModelResponse:
        assert self._on_delta is not None
        final: ModelResponse | None = None
        streamed: list[str] = []
        async for item in self._model.stream(transcript, options):
            if isinstance(item, ModelDelta):
                streamed.append(item.text)
                await self._on_delta(item.text)
            else:
                final = item
        if final is None:
            if not streamed:
                raise NoResponseFromModelError()
            final = ModelResponse(content="".join(streamed))
        return final

    def _parse_output(self, content: str) -> None:
        if self._output_type is None or self._output_type is str:
            self.output = content
            return
        try:
            value = OpaqueValue.from_json(extract_json_text(content))
        except InvalidJSONResponseError:
            logger.warning("output_not_json", agent_id=self._agent.id)
            raise
        self.output = value.decode_as(self._output_type)

    async def _handle_tool_calls(self, calls: list[ToolCall]) -> list[Message]:
        permitted = [call for call in calls if call.name in self._tools]
        requested = self.tool_call_count + len(permitted)
        limit = self._policy.max_tool_calls
        if limit is not None and requested > limit:
            logger.warning(
                "tool_call_limit_exceeded",
                agent_id=self._agent.id,
                limit=limit,
                requested=requested,
            )
            raise ToolCallLimitExceededError(limit, requested)
        self.tool_call_count = requested

        self.state = LoopState.EXECUTING_TOOLS
        outcomes = iter(await self._execute_all(permitted))

        results: list[Message] = []
        for call in calls:
            if call.name in self._tools:
                execution, message = next(outcomes)
                self.tool_executions.append(execution)
                results.append(message)
            else:
                results.append(await self._reject(call))
        return results

    async def _execute_all(self, calls: list[ToolCall]) -> list[tuple[ToolExecution, Message]]:
        """Run calls concurrently, results in request order.

        An infrastructure failure in one call cancels the others before it
        is raised.
        """
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(self._execute(call)) for call in calls]
        except BaseExceptionGroup as e:
            raise e.exceptions[0] from None
        return [task.result() for task in tasks]

    async def _reject(self, call: ToolCall) -> Message:
        logger.warning("tool_not_available", agent_id=self._agent.id, tool_name=call.name)
        await self._emit(RunEventType.TOOL_REJECTED, {"tool_name": call.name})
        return Message.tool(
            f"Error: tool '{call.name}' is not available",
            tool_call_id=call.id,
            name=call.name,
        )

    async def _execute(self, call: ToolCall) -> tuple[ToolExecution, Message]:
        tool = self._tools[call.name]
        await self._emit(RunEventType.TOOL_STARTED, {"tool_name": call.name, "call_id": call.id})
        started_at = utc_now()
        start = time.perf_counter()
        result: OpaqueValue | None = None
        error: str | None = None
        content: str
        try:
            raw = await tool.call(call.arguments)
            result = OpaqueValue.encode(raw)
            content = render_tool_result(raw)
        except ToolInfrastructureError:
            logger.error("tool_infrastructure_failure", tool_name=call.name, call_id=call.id)
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            content = f"Error: {error}"
            logger.warning("tool_execution_failed", tool_name=call.name, error=error)
        duration = time.perf_counter() - start

        metrics.record_tool(call.name, "success" if error is None else "error", duration)
        await self._emit(
            RunEventType.TOOL_COMPLETED,
            {"tool_name": call.name, "call_id": call.id, "success": error is None},
        )
        execution = ToolExecution(
            tool_name=call.name,
            tool_call_id=call.id,
            arguments=call.arguments,
            result=result,
            error=error,
            duration_ms=duration * 1000,
            timestamp=started_at,
        )
        message = Message.tool(content, tool_call_id=call.id, name=call.name, payload=result)
        return execution, message

    async def _emit(self, event_type: RunEventType, data: dict[str, Any]) -> None:
        if self._on_event is not None:
            await self._on_event(event_type, data)
