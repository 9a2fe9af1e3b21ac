"""Tests for AgentCenter runs."""

import asyncio
from pathlib import Path
from uuid import uuid4

import pytest
from pydantic import BaseModel

from conductor.config import Settings
from conductor.domain import (
    Agent,
    AgentRunOptions,
    AgentSessionContext,
    ExecutionPolicy,
    HookContext,
    MessageRole,
    Run,
    RunStatus,
    SummaryHookContext,
)
from conductor.errors import (
    AgentNotFoundError,
    ExecutionTimeoutError,
    ModelNotFoundError,
    SessionNotFoundError,
    ToolCallLimitExceededError,
    UnknownToolError,
)
from conductor.observability.events import RecordingObserver, RunEventType
from conductor.providers import MockModel, ModelResponse, tool_call
from conductor.runtime import AgentCenter
from conductor.storage import FileAgentStorage, InMemoryAgentStorage
from conductor.tools import FunctionTool


class Weather(BaseModel):
    city: str
    temperature: int


def add(a: int, b: int) -> int:
    """Add two numbers."""
    return a + b


async def new_session(center: AgentCenter, agent_id: str = "assistant") -> AgentSessionContext:
    return await center.create_session(agent_id, "user-1")


class TestRunBasics:
    """Tests for single runs."""

    @pytest.mark.asyncio
    async def test_messages_start_with_user_and_end_with_assistant(
        self, center: AgentCenter
    ) -> None:
        session = await new_session(center)

        run = await center.run(session, "hello", load_history=False)

        assert run.status == RunStatus.COMPLETED
        assert run.messages[0].role == MessageRole.USER
        assert run.messages[0].content == "hello"
        assert run.messages[-1].role == MessageRole.ASSISTANT
        assert run.content == "ok"
        assert run.as_text() == "ok"
        assert run.model_name == "mock"
        assert run.model_provider == "mock"

    @pytest.mark.asyncio
    async def test_run_is_persisted(self, center: AgentCenter) -> None:
        session = await new_session(center)

        run = await center.run(session, "hello")
        stored = await center.get_session(session)

        assert stored.run_count == 1
        assert stored.runs[0].id == run.id
        assert stored.messages == run.messages
        assert await center.storage.get_run(run.id) is not None

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, center: AgentCenter, model: MockModel) -> None:
        model.enqueue(ModelResponse(content="hi", usage={"input_tokens": 7, "output_tokens": 3}))
        session = await new_session(center)

        run = await center.run(session, "hello")

        assert run.metrics is not None
        assert run.metrics.input_tokens == 7
        assert run.metrics.output_tokens == 3
        assert run.metrics.total_tokens == 10
        assert run.metrics.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_structured_output(self, center: AgentCenter, model: MockModel) -> None:
        model.enqueue('{"city": "Paris", "temperature": 21}')
        session = await new_session(center)

        run = await center.run(session, "weather?", output_type=Weather)

        assert run.decoded(Weather) == Weather(city="Paris", temperature=21)

    @pytest.mark.asyncio
    async def test_metadata_stored_on_run(self, center: AgentCenter) -> None:
        session = await new_session(center)

        run = await center.run(session, "hello", metadata={"channel": "web"})

        assert run.metadata["channel"].decode() == "web"

    @pytest.mark.asyncio
    async def test_parent_run_id(self, center: AgentCenter) -> None:
        session = await new_session(center)
        parent = await center.run(session, "outer")

        child = await center.run(session, "inner", parent_run_id=parent.id)

        assert child.parent_run_id == parent.id


class TestHistory:
    """Tests for history loading and session accounting."""

    @pytest.mark.asyncio
    async def test_transcript_contains_all_prior_messages(
        self, center: AgentCenter, model: MockModel
    ) -> None:
        """With history loaded, the model sees every prior message in order."""
        session = await new_session(center)
        runs = [await center.run(session, f"message {i}") for i in range(3)]

        await center.run(session, "latest")

        transcript = model.transcripts[-1]
        prior = [m for run in runs for m in run.messages]
        assert transcript[0].role == MessageRole.SYSTEM
        assert transcript[1:-1] == prior
        assert transcript[-1].content == "latest"

    @pytest.mark.asyncio
    async def test_without_history(self, center: AgentCenter, model: MockModel) -> None:
        session = await new_session(center)
        await center.run(session, "first")

        await center.run(session, "second", load_history=False)

        assert [m.content for m in model.transcripts[-1]] == [
            "You are a helpful assistant.",
            "second",
        ]

    @pytest.mark.asyncio
    async def test_run_and_message_counts(self, center: AgentCenter) -> None:
        """After K runs the session holds K runs and all their messages."""
        session = await new_session(center)
        runs = [await center.run(session, f"message {i}") for i in range(4)]

        stored = await center.get_session(session)

        assert stored.run_count == 4
        assert stored.message_count == sum(len(run.messages) for run in runs)

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, center: AgentCenter) -> None:
        """Interleaved runs on two sessions never mix."""
        first = await new_session(center)
        second = await new_session(center)

        await asyncio.gather(
            *(center.run(first, f"a{i}") for i in range(3)),
            *(center.run(second, f"b{i}") for i in range(2)),
        )

        stored_first = await center.get_session(first)
        stored_second = await center.get_session(second)
        assert stored_first.run_count == 3
        assert stored_second.run_count == 2
        assert all(m.content.startswith("a") or m.content == "ok" for m in stored_first.messages)
        assert all(m.content.startswith("b") or m.content == "ok" for m in stored_second.messages)

    @pytest.mark.asyncio
    async def test_message_cap(self, center: AgentCenter, model: MockModel) -> None:
        """A cap of 2 over two prior runs sends system, two messages and the user turn."""
        session = await new_session(center)
        await center.run(session, "one")
        await center.run(session, "two")

        await center.run(session, "three", policy=ExecutionPolicy(max_history_messages=2))

        assert [m.content for m in model.transcripts[-1]] == [
            "You are a helpful assistant.",
            "two",
            "ok",
            "three",
        ]

    @pytest.mark.asyncio
    async def test_token_budget(self, center: AgentCenter, model: MockModel) -> None:
        """A budget of one token keeps only the short reply."""
        session = await new_session(center)
        await center.run(session, "a rather long question about the weather")

        await center.run(session, "again", policy=ExecutionPolicy(max_history_tokens=1))

        assert [m.content for m in model.transcripts[-1]] == [
            "You are a helpful assistant.",
            "ok",
            "again",
        ]

    @pytest.mark.asyncio
    async def test_summary_persisted_and_rendered(
        self, center: AgentCenter, model: MockModel
    ) -> None:
        async def summarize(ctx: SummaryHookContext) -> str:
            return f"{len(ctx.dropped_messages)} earlier messages"

        await center.register_summary_hook(summarize, "summarize")
        session = await new_session(center)
        await center.run(session, "one")
        await center.run(session, "two")
        policy = ExecutionPolicy(max_history_messages=2, summary_hook_name="summarize")

        await center.run(session, "three", policy=policy)

        stored = await center.get_session(session)
        assert stored.summary == "2 earlier messages"
        transcript = model.transcripts[-1]
        assert transcript[1].role == MessageRole.SYSTEM
        assert transcript[1].content == "Conversation summary:\n2 earlier messages"


class TestErrors:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_unknown_session(self, center: AgentCenter) -> None:
        missing = uuid4()

        with pytest.raises(SessionNotFoundError) as exc_info:
            await center.run(missing, "hello")
        assert exc_info.value.session_id == missing

    @pytest.mark.asyncio
    async def test_session_of_another_user(self, center: AgentCenter) -> None:
        session = await new_session(center)
        other = session.model_copy(update={"user_id": "intruder"})

        with pytest.raises(SessionNotFoundError):
            await center.run(other, "hello")

    @pytest.mark.asyncio
    async def test_create_session_for_unknown_agent(self, center: AgentCenter) -> None:
        with pytest.raises(AgentNotFoundError):
            await center.create_session("ghost", "user-1")

    @pytest.mark.asyncio
    async def test_unknown_model_persists_nothing(self, center: AgentCenter) -> None:
        """A missing model fails before a run exists."""
        await center.register_agent(Agent(id="orphan", name="Orphan", model_name="gpt-ghost"))
        session = await new_session(center, "orphan")

        with pytest.raises(ModelNotFoundError) as exc_info:
            await center.run(session, "hello")

        assert exc_info.value.model_name == "gpt-ghost"
        assert (await center.get_session(session)).runs == []

    @pytest.mark.asyncio
    async def test_unknown_allowed_tool(self, center: AgentCenter) -> None:
        session = await new_session(center)
        options = AgentRunOptions(allowed_tool_names=frozenset({"does_not_exist"}))

        with pytest.raises(UnknownToolError):
            await center.run(session, "hello", options=options)

    @pytest.mark.asyncio
    async def test_tool_call_limit(self, center: AgentCenter, model: MockModel) -> None:
        """Three requested calls against a cap of two fail the run."""
        await center.register_tool(FunctionTool(add))
        await center.register_agent(
            Agent(id="calc", name="Calc", model_name="mock", tool_names=("add",))
        )
        model.enqueue(
            ModelResponse(
                tool_calls=[tool_call("add", {"a": 1, "b": 1}), tool_call("add", {"a": 2, "b": 2})]
            ),
            ModelResponse(tool_calls=[tool_call("add", {"a": 3, "b": 3})]),
        )
        session = await new_session(center, "calc")

        with pytest.raises(ToolCallLimitExceededError):
            await center.run(session, "sum", policy=ExecutionPolicy(max_tool_calls=2))

        stored = await center.get_session(session)
        assert stored.run_count == 1
        failed = stored.runs[0]
        assert failed.status == RunStatus.FAILED
        assert len(failed.tool_executions) <= 2
        assert "limit" in failed.error
        assert stored.messages == []

    @pytest.mark.asyncio
    async def test_retry_after_transient_failure(
        self, center: AgentCenter, model: MockModel
    ) -> None:
        model.enqueue(ConnectionError("flaky"), "recovered")
        session = await new_session(center)

        run = await center.run(session, "hello", policy=ExecutionPolicy(retries=1))

        assert run.status == RunStatus.COMPLETED
        assert run.content == "recovered"
        assert len(model.call_history) == 2

    @pytest.mark.asyncio
    async def test_timeout_persists_failed_run(self, storage: InMemoryAgentStorage) -> None:
        center = AgentCenter(storage)
        await center.register_model(MockModel(delay=1.0), "mock")
        await center.register_agent(Agent(id="slow", name="Slow", model_name="mock"))
        session = await new_session(center, "slow")

        with pytest.raises(ExecutionTimeoutError):
            await center.run(session, "hello", policy=ExecutionPolicy(timeout=0.05))

        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.FAILED
        assert stored.runs[0].messages[0].content == "hello"

    @pytest.mark.asyncio
    async def test_cancellation_persists_cancelled_run(self, storage: InMemoryAgentStorage) -> None:
        model = MockModel(delay=10.0)
        center = AgentCenter(storage)
        await center.register_model(model, "mock")
        await center.register_agent(Agent(id="slow", name="Slow", model_name="mock"))
        session = await new_session(center, "slow")

        task = asyncio.create_task(center.run(session, "hello"))
        while not model.call_history:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.CANCELLED
        assert stored.messages == []


class SlowCommitStorage(InMemoryAgentStorage):
    """Storage whose commits take a while to land."""

    def __init__(self) -> None:
        super().__init__()
        self.committing = asyncio.Event()

    async def commit_run(
        self, run: Run, *, summary: str | None = None, replace_summary: bool = False
    ) -> None:
        self.committing.set()
        await asyncio.sleep(0.2)
        await super().commit_run(run, summary=summary, replace_summary=replace_summary)


class FailingCommitStorage(InMemoryAgentStorage):
    async def commit_run(
        self, run: Run, *, summary: str | None = None, replace_summary: bool = False
    ) -> None:
        raise OSError("disk full")


async def center_with(storage: InMemoryAgentStorage, model: MockModel) -> AgentCenter:
    center = AgentCenter(storage)
    await center.register_model(model, "mock")
    await center.register_agent(Agent(id="assistant", name="Assistant", model_name="mock"))
    return center


class TestPersistence:
    """Tests for storing finished runs."""

    @pytest.mark.asyncio
    async def test_cancel_during_commit_keeps_session_consistent(self) -> None:
        """A cancellation mid-commit waits for the run and its messages to land together."""
        storage = SlowCommitStorage()
        center = await center_with(storage, MockModel(default_response="ok"))
        session = await new_session(center)

        task = asyncio.create_task(center.run(session, "hello"))
        await storage.committing.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        stored = await center.get_session(session)
        assert stored.run_count == 1
        assert stored.runs[0].status == RunStatus.COMPLETED
        assert stored.message_count == 2
        assert stored.message_count == sum(len(r.messages) for r in stored.runs)

    @pytest.mark.asyncio
    async def test_failed_commit_stores_failed_run_only(self) -> None:
        center = await center_with(FailingCommitStorage(), MockModel(default_response="ok"))
        session = await new_session(center)

        with pytest.raises(OSError, match="disk full"):
            await center.run(session, "hello")

        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.FAILED
        assert stored.runs[0].error == "disk full"
        assert stored.messages == []

    @pytest.mark.asyncio
    async def test_deferred_cancellation_applies_after_completion(self) -> None:
        """With propagation off the attempt completes and is stored, then the task is cancelled."""
        model = MockModel(default_response="ok", delay=0.1)
        center = await center_with(InMemoryAgentStorage(), model)
        session = await new_session(center)

        task = asyncio.create_task(
            center.run(session, "hello", policy=ExecutionPolicy(propagate_cancellation=False))
        )
        while not model.call_history:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.COMPLETED
        assert [m.content for m in stored.messages] == ["hello", "ok"]

    @pytest.mark.asyncio
    async def test_deferred_cancellation_after_failed_attempt(self) -> None:
        """A failed attempt is not retried once cancellation was requested."""
        model = MockModel([ConnectionError("flaky")], default_response="ok", delay=0.1)
        center = await center_with(InMemoryAgentStorage(), model)
        session = await new_session(center)

        task = asyncio.create_task(
            center.run(
                session,
                "hello",
                policy=ExecutionPolicy(propagate_cancellation=False, retries=2),
            )
        )
        while not model.call_history:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(model.call_history) == 1
        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.FAILED
        assert stored.messages == []


class TestHooks:
    """Tests for hooks around runs."""

    @pytest.mark.asyncio
    async def test_pre_hook_rewrite_is_persisted(
        self, center: AgentCenter, model: MockModel
    ) -> None:
        async def redact(ctx: HookContext) -> None:
            ctx.user_message = ctx.user_message.replace("secret", "[redacted]")

        await center.register_pre_hook(redact, "redact")
        await center.register_agent(
            Agent(id="guarded", name="Guarded", model_name="mock", pre_hook_names=("redact",))
        )
        session = await new_session(center, "guarded")

        run = await center.run(session, "my secret plan")

        assert run.user_message is not None
        assert run.user_message.content == "my [redacted] plan"
        assert model.transcripts[-1][-1].content == "my [redacted] plan"
        stored = await center.get_session(session)
        assert stored.runs[0].user_message.content == "my [redacted] plan"

    @pytest.mark.asyncio
    async def test_failing_background_post_hook(self, center: AgentCenter) -> None:
        """A throwing non-blocking post-hook leaves the run completed."""
        sibling_done = asyncio.Event()

        async def explode(ctx: HookContext, run: Run) -> None:
            raise RuntimeError("analytics offline")

        async def slow_sibling(ctx: HookContext, run: Run) -> None:
            await asyncio.sleep(0.05)
            sibling_done.set()

        await center.register_post_hook(explode, "explode", blocking=False)
        await center.register_post_hook(slow_sibling, "sibling", blocking=False)
        await center.register_agent(
            Agent(
                id="hooked",
                name="Hooked",
                model_name="mock",
                post_hook_names=("explode", "sibling"),
            )
        )
        session = await new_session(center, "hooked")

        run = await center.run(session, "hello")
        assert run.status == RunStatus.COMPLETED

        await center.wait_for_background_hooks()
        assert sibling_done.is_set()
        assert [f.hook_name for f in center.hooks.recent_failures] == ["explode"]

    @pytest.mark.asyncio
    async def test_blocking_post_hook_sees_content(self, center: AgentCenter) -> None:
        seen: list[tuple[RunStatus, str | None]] = []

        async def audit(ctx: HookContext, run: Run) -> None:
            seen.append((run.status, run.content))

        await center.register_post_hook(audit, "audit")
        await center.register_agent(
            Agent(id="audited", name="Audited", model_name="mock", post_hook_names=("audit",))
        )
        session = await new_session(center, "audited")

        await center.run(session, "hello")

        assert seen == [(RunStatus.RUNNING, "ok")]

    @pytest.mark.asyncio
    async def test_blocking_post_hook_cannot_change_run(self, center: AgentCenter) -> None:
        async def tamper(ctx: HookContext, run: Run) -> None:
            run.raw_content = b"tampered"
            run.set_metadata("tampered", True)

        await center.register_post_hook(tamper, "tamper")
        await center.register_agent(
            Agent(id="tampered", name="Tampered", model_name="mock", post_hook_names=("tamper",))
        )
        session = await new_session(center, "tampered")

        run = await center.run(session, "hello")

        assert run.as_text() == "ok"
        assert "tampered" not in run.metadata
        stored = await center.get_session(session)
        assert stored.runs[0].as_text() == "ok"

    @pytest.mark.asyncio
    async def test_failing_blocking_post_hook_fails_run(self, center: AgentCenter) -> None:
        async def veto(ctx: HookContext, run: Run) -> None:
            raise ValueError("content rejected")

        await center.register_post_hook(veto, "veto")
        await center.register_agent(
            Agent(id="vetoed", name="Vetoed", model_name="mock", post_hook_names=("veto",))
        )
        session = await new_session(center, "vetoed")

        with pytest.raises(ValueError, match="content rejected"):
            await center.run(session, "hello")

        stored = await center.get_session(session)
        assert stored.runs[0].status == RunStatus.FAILED
        assert stored.runs[0].error == "content rejected"


class TestToolFilters:
    """Tests for per-run tool filtering."""

    @pytest.mark.asyncio
    async def test_blocked_tool_is_rejected(self, center: AgentCenter, model: MockModel) -> None:
        await center.register_tool(FunctionTool(add))
        await center.register_agent(
            Agent(id="calc", name="Calc", model_name="mock", tool_names=("add",))
        )
        model.enqueue(ModelResponse(tool_calls=[tool_call("add", {"a": 1, "b": 2})]), "no tools")
        session = await new_session(center, "calc")

        run = await center.run(
            session, "1+2", options=AgentRunOptions(blocked_tool_names=frozenset({"add"}))
        )

        assert run.tool_executions == []
        assert run.messages[2].content == "Error: tool 'add' is not available"
        assert model.call_history[0]["options"].tools == []

    @pytest.mark.asyncio
    async def test_allow_list_cannot_grant_foreign_tools(
        self, center: AgentCenter, model: MockModel
    ) -> None:
        await center.register_tool(FunctionTool(add))
        session = await new_session(center)

        await center.run(
            session, "hello", options=AgentRunOptions(allowed_tool_names=frozenset({"add"}))
        )

        assert model.call_history[0]["options"].tools == []


class TestObservers:
    """Tests for lifecycle events."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, center: AgentCenter) -> None:
        observer = RecordingObserver()
        center.add_observer(observer)
        session = await new_session(center)

        run = await center.run(session, "hello")

        assert observer.types() == [
            RunEventType.SESSION_CREATED,
            RunEventType.RUN_STARTED,
            RunEventType.TRANSCRIPT_BUILT,
            RunEventType.MODEL_REQUEST_SENDING,
            RunEventType.MODEL_RESPONSE_RECEIVED,
            RunEventType.RUN_SAVED,
            RunEventType.RUN_COMPLETED,
        ]
        assert all(e.run_id == run.id for e in observer.events[1:])

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_run(self, center: AgentCenter) -> None:
        class Broken(RecordingObserver):
            async def on_event(self, event) -> None:
                raise RuntimeError("observer down")

        center.add_observer(Broken())
        session = await new_session(center)

        run = await center.run(session, "hello")

        assert run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_retry_event(self, center: AgentCenter, model: MockModel) -> None:
        observer = RecordingObserver()
        center.add_observer(observer)
        model.enqueue(ConnectionError("flaky"))
        session = await new_session(center)

        await center.run(session, "hello", policy=ExecutionPolicy(retries=1))

        assert RunEventType.RUN_RETRYING in observer.types()


class TestSessionManagement:
    """Tests for session helpers on the center."""

    @pytest.mark.asyncio
    async def test_list_rename_delete(self, center: AgentCenter) -> None:
        session = await center.create_session("assistant", "user-1", name="draft")

        renamed = await center.rename_session(session.session_id, "final")
        listed = await center.list_sessions()

        assert renamed.name == "final"
        assert [s.id for s in listed] == [session.session_id]
        assert (await center.get_stats()).total_sessions == 1
        assert await center.delete_session(session.session_id) is True
        with pytest.raises(SessionNotFoundError):
            await center.get_session(session.session_id)

    @pytest.mark.asyncio
    async def test_prepare_agent(self, center: AgentCenter) -> None:
        agent = await center.prepare_agent("assistant")
        assert agent.id == "assistant"

    @pytest.mark.asyncio
    async def test_prepare_agent_without_model(self, center: AgentCenter) -> None:
        await center.register_agent(Agent(id="orphan", name="Orphan", model_name="gpt-ghost"))
        with pytest.raises(ModelNotFoundError):
            await center.prepare_agent("orphan")


class TestFromSettings:
    """Tests for AgentCenter.from_settings."""

    @pytest.mark.asyncio
    async def test_builds_configured_storage_and_policy(self, tmp_path: Path) -> None:
        settings = Settings(
            storage={"backend": "file", "file_root": str(tmp_path)},
            runtime={"retries": 1},
            observability={"metrics": {"enabled": False}},
        )
        center = AgentCenter.from_settings(settings)
        model = MockModel([ConnectionError("flaky")], default_response="second try")
        await center.register_model(model, "mock")
        await center.register_agent(Agent(id="a", name="A", model_name="mock"))
        session = await center.create_session("a", "user-1")

        run = await center.run(session, "hello")

        assert isinstance(center.storage, FileAgentStorage)
        assert run.content == "second try"
        assert (tmp_path / "agents" / "a").exists()
