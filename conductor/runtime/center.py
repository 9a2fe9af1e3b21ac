"""AgentCenter: the entry point that runs agents.

A run resolves the session, agent, model and tools, runs pre-hooks, drives
the model-tool loop under the execution policy, runs post-hooks, and
persists the result. Streaming runs follow the same path and forward text
deltas as they arrive.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any
from uuid import UUID

from conductor.config import Settings, get_settings
from conductor.domain import (
    Agent,
    AgentRunOptions,
    AgentSessionContext,
    ExecutionPolicy,
    HookContext,
    Message,
    OpaqueValue,
    PostHookFunc,
    PreHookFunc,
    Run,
    RunDelta,
    RunFinished,
    RunMetrics,
    RunRestarted,
    RunStatus,
    RunStreamEvent,
    Session,
    SessionFilter,
    StorageStats,
    SummaryHookFunc,
)
from conductor.errors import SessionNotFoundError, UnknownToolError
from conductor.observability import metrics
from conductor.observability.events import RunEvent, RunEventType, RunObserver, emit
from conductor.observability.logging import bound_context, get_logger, setup_logging
from conductor.providers.model import Model
from conductor.runtime.configuration import AgentConfiguration, validate_configuration
from conductor.runtime.context_window import ContextWindow, ContextWindowManager
from conductor.runtime.hooks import HookPipeline
from conductor.runtime.loop import AgentLoop, DeltaSink
from conductor.runtime.policy import ExecutionPolicyEnforcer
from conductor.runtime.registry import DescriptorRegistry
from conductor.storage import AgentStorage, InMemoryAgentStorage, create_storage
from conductor.tools.base import Tool

logger = get_logger(__name__)

SessionRef = AgentSessionContext | UUID
RestartSink = Callable[[int], Awaitable[None]]

_STREAM_DONE = object()


class AgentCenter:
    """Registers agents and their capabilities, and runs them."""

    def __init__(
        self,
        storage: AgentStorage | None = None,
        *,
        registry: DescriptorRegistry | None = None,
        default_policy: ExecutionPolicy | None = None,
        observers: list[RunObserver] | None = None,
    ) -> None:
        """Initialize the center.

        Args:
            storage: Session and run persistence; in-memory when omitted
            registry: Descriptor registry; a fresh one when omitted
            default_policy: Policy for runs that do not pass one
            observers: Receivers of run lifecycle events
        """
        self._storage = storage or InMemoryAgentStorage()
        self._registry = registry or DescriptorRegistry()
        self._default_policy = default_policy or ExecutionPolicy()
        self._observers: list[RunObserver] = list(observers or [])
        self._hooks = HookPipeline(self._registry)
        self._context_window = ContextWindowManager(self._registry)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> "AgentCenter":
        """Build a center from configuration, setting up logging and metrics."""
        settings = settings or get_settings()
        observability = settings.observability
        setup_logging(
            level=observability.logging.level,
            format=observability.logging.format,
            redact_pii=observability.logging.redact_pii,
        )
        metrics.setup_metrics(observability.metrics.enabled)
        return cls(
            storage=create_storage(settings.storage),
            default_policy=settings.runtime.default_policy(),
            **kwargs,
        )

    @property
    def registry(self) -> DescriptorRegistry:
        return self._registry

    @property
    def storage(self) -> AgentStorage:
        return self._storage

    @property
    def hooks(self) -> HookPipeline:
        return self._hooks

    def add_observer(self, observer: RunObserver) -> None:
        self._observers.append(observer)

    # Registration

    async def register_agent(self, agent: Agent) -> Agent:
        await self._registry.register_agent(agent)
        logger.info("agent_registered", agent_id=agent.id, model_name=agent.model_name)
        return agent

    async def register_model(self, model: Model, name: str) -> None:
        await self._registry.register_model(model, name)

    async def register_tool(self, tool: Tool) -> None:
        await self._registry.register_tool(tool)

    async def register_tools(self, tools: list[Tool]) -> None:
        await self._registry.register_tools(tools)

    async def register_tool_group(self, name: str, tools: list[Tool]) -> None:
        await self._registry.register_tool_group(name, tools)

    async def register_pre_hook(
        self, func: PreHookFunc, name: str, *, blocking: bool = True
    ) -> None:
        await self._registry.register_pre_hook(func, name, blocking=blocking)

    async def register_post_hook(
        self, func: PostHookFunc, name: str, *, blocking: bool = True
    ) -> None:
        await self._registry.register_post_hook(func, name, blocking=blocking)

    async def register_summary_hook(self, func: SummaryHookFunc, name: str) -> None:
        await self._registry.register_summary_hook(func, name)

    def get_agent(self, agent_id: str) -> Agent:
        return self._registry.get_agent(agent_id)

    async def load_configuration(self, config: AgentConfiguration) -> list[Agent]:
        """Validate and register a configuration.

        Nothing is registered unless the whole configuration is valid.

        Raises:
            InvalidConfigurationError: Listing every problem found
        """
        validate_configuration(config, self._registry)
        for group in config.tool_groups:
            tools = [self._registry.find_tool(name) for name in group.tool_names]
            await self._registry.register_tool_group(
                group.name, [tool for tool in tools if tool is not None]
            )
        await self._registry.register_agents(config.agents)
        logger.info(
            "configuration_loaded",
            agents=len(config.agents),
            tool_groups=len(config.tool_groups),
        )
        return list(config.agents)

    async def load_configuration_file(self, path: str | Path) -> list[Agent]:
        return await self.load_configuration(AgentConfiguration.from_toml(path))

    async def prepare_agent(self, agent_id: str) -> Agent:
        """Resolve an agent's model and tools ahead of its first run.

        Raises:
            AgentNotFoundError: If the agent is not registered
            ModelNotFoundError: If its model is not registered
        """
        agent = self._registry.get_agent(agent_id)
        self._registry.get_model(agent.model_name)
        tools = self._registry.tools_for_agent(agent)
        logger.info("agent_prepared", agent_id=agent.id, tools=sorted(tools))
        return agent

    # Sessions

    async def create_session(
        self,
        agent_id: str,
        user_id: str,
        *,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AgentSessionContext:
        """Create and store an empty session for a registered agent.

        Raises:
            AgentNotFoundError: If the agent is not registered
        """
        self._registry.get_agent(agent_id)
        session = Session(
            agent_id=agent_id,
            user_id=user_id,
            name=name,
            metadata={key: OpaqueValue.encode(value) for key, value in (metadata or {}).items()},
        )
        await self._storage.create_session(session)
        await emit(
            self._observers,
            RunEvent(type=RunEventType.SESSION_CREATED, agent_id=agent_id, session_id=session.id),
        )
        logger.info("session_created", agent_id=agent_id, session_id=str(session.id))
        return session.context

    async def get_session(self, session: SessionRef) -> Session:
        """Load a session.

        Raises:
            SessionNotFoundError: If it does not exist, or belongs to another agent or user
        """
        if isinstance(session, AgentSessionContext):
            found = await self._storage.get_session(
                session.session_id, agent_id=session.agent_id, user_id=session.user_id
            )
            session_id = session.session_id
        else:
            found = await self._storage.get_session(session)
            session_id = session
        if found is None:
            raise SessionNotFoundError(session_id)
        return found

    async def list_sessions(self, criteria: SessionFilter | None = None) -> list[Session]:
        return await self._storage.list_sessions(criteria)

    async def rename_session(self, session_id: UUID, name: str | None) -> Session:
        return await self._storage.rename_session(session_id, name)

    async def delete_session(self, session_id: UUID) -> bool:
        return await self._storage.delete_session(session_id)

    async def get_stats(self) -> StorageStats:
        return await self._storage.get_stats()

    # Running

    async def run(
        self,
        session: SessionRef,
        message: str,
        *,
        output_type: type | None = None,
        options: AgentRunOptions | None = None,
        policy: ExecutionPolicy | None = None,
        load_history: bool = True,
        parent_run_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Run:
        """Run an agent once and return the persisted Run.

        Args:
            session: Session to run in
            message: User message
            output_type: Type the final content must parse into, if not plain text
            options: Generation options and tool filters
            policy: Execution policy; the center's default when omitted
            load_history: Send the session's history to the model
            parent_run_id: Parent run, for nested invocations
            metadata: Free-form metadata stored on the run and given to hooks

        Raises:
            SessionNotFoundError: If the session does not exist
            AgentNotFoundError: If the session's agent is not registered
            ModelNotFoundError: If the agent's model is not registered
            UnknownToolError: If the allow-list names an unregistered tool
            asyncio.CancelledError: If cancelled while cancellation propagates
            Exception: Any hook, model or loop failure; the failed Run is persisted first
        """
        return await self._execute(
            session,
            message,
            output_type=output_type,
            options=options,
            policy=policy,
            load_history=load_history,
            parent_run_id=parent_run_id,
            metadata=metadata,
            on_delta=None,
            on_restart=None,
        )

    async def stream(
        self,
        session: SessionRef,
        message: str,
        *,
        output_type: type | None = None,
        options: AgentRunOptions | None = None,
        policy: ExecutionPolicy | None = None,
        load_history: bool = True,
        parent_run_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AsyncIterator[RunStreamEvent]:
        """Run an agent, yielding RunDelta items and finally RunFinished.

        When a failed attempt is retried, RunRestarted is yielded before the
        new attempt streams anything; deltas before it are void. The deltas
        after the last RunRestarted are the text of the finished run. Closing
        the iterator early cancels the run.
        """
        queue: asyncio.Queue[Any] = asyncio.Queue()

        async def on_delta(text: str) -> None:
            await queue.put(RunDelta(text=text))

        async def on_restart(attempt: int) -> None:
            await queue.put(RunRestarted(attempt=attempt))

        task = asyncio.create_task(
            self._execute(
                session,
                message,
                output_type=output_type,
                options=options,
                policy=policy,
                load_history=load_history,
                parent_run_id=parent_run_id,
                metadata=metadata,
                on_delta=on_delta,
                on_restart=on_restart,
            )
        )
        task.add_done_callback(lambda _task: queue.put_nowait(_STREAM_DONE))
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_DONE:
                    break
                yield item
            yield RunFinished(run=await task)
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def wait_for_background_hooks(self) -> None:
        """Wait for every non-blocking hook currently in flight."""
        await self._hooks.wait_for_background_hooks()

    def cancel_background_hooks(self) -> int:
        """Cancel every non-blocking hook in flight; returns how many."""
        cancelled = self._hooks.cancel_background_hooks()
        if cancelled:
            logger.info("background_hooks_cancelled", count=cancelled)
        return cancelled

    # Pipeline

    def _effective_tools(self, agent: Agent, options: AgentRunOptions) -> dict[str, Tool]:
        if options.allowed_tool_names is not None:
            for name in sorted(options.allowed_tool_names):
                if self._registry.find_tool(name) is None:
                    raise UnknownToolError(name)
        tools = self._registry.tools_for_agent(agent)
        return {name: tool for name, tool in tools.items() if options.permits(name)}

    async def _execute(
        self,
        session_ref: SessionRef,
        message: str,
        *,
        output_type: type | None,
        options: AgentRunOptions | None,
        policy: ExecutionPolicy | None,
        load_history: bool,
        parent_run_id: UUID | None,
        metadata: dict[str, Any] | None,
        on_delta: DeltaSink | None,
        on_restart: RestartSink | None,
    ) -> Run:
        options = options or AgentRunOptions()
        policy = policy or self._default_policy

        session = await self.get_session(session_ref)
        agent = self._registry.get_agent(session.agent_id)
        model = self._registry.get_model(agent.model_name)
        tools = self._effective_tools(agent, options)

        with bound_context(agent_id=agent.id, session_id=str(session.id)):
            hook_context = HookContext(
                agent=agent,
                session=session.context,
                user_message=message,
                metadata=dict(metadata or {}),
            )
            await self._hooks.run_pre_hooks(agent, hook_context)

            run = Run(
                agent_id=agent.id,
                session_id=session.id,
                user_id=session.user_id,
                parent_run_id=parent_run_id,
                model_name=agent.model_name,
                model_provider=model.provider_name,
            )
            for key, value in (metadata or {}).items():
                run.set_metadata(key, value)

            with bound_context(run_id=str(run.id)):
                return await self._drive(
                    run=run,
                    session=session,
                    agent=agent,
                    model=model,
                    tools=tools,
                    options=options,
                    policy=policy,
                    hook_context=hook_context,
                    output_type=output_type,
                    load_history=load_history,
                    on_delta=on_delta,
                    on_restart=on_restart,
                )

    async def _drive(
        self,
        *,
        run: Run,
        session: Session,
        agent: Agent,
        model: Model,
        tools: dict[str, Tool],
        options: AgentRunOptions,
        policy: ExecutionPolicy,
        hook_context: HookContext,
        output_type: type | None,
        load_history: bool,
        on_delta: DeltaSink | None,
        on_restart: RestartSink | None,
    ) -> Run:
        started = time.perf_counter()
        attempts: list[AgentLoop] = []

        async def on_event(event_type: RunEventType, data: dict[str, Any]) -> None:
            await self._emit(event_type, run, data)

        async def attempt(number: int) -> AgentLoop:
            loop = AgentLoop(
                agent=agent,
                model=model,
                tools=tools,
                options=options,
                policy=policy,
                output_type=output_type,
                on_event=on_event,
                on_delta=on_delta,
            )
            attempts.append(loop)
            logger.debug("attempt_started", attempt=number)
            await loop.run(history, hook_context.user_message)
            return loop

        async def on_retry(number: int, error: Exception) -> None:
            await self._emit(
                RunEventType.RUN_RETRYING, run, {"attempt": number, "error": str(error)}
            )
            if on_restart is not None:
                await on_restart(number + 1)

        await self._emit(RunEventType.RUN_STARTED, run, {"model_name": agent.model_name})
        logger.info("run_started", model_name=agent.model_name, load_history=load_history)

        enforcer = ExecutionPolicyEnforcer(policy, agent.id)
        window: ContextWindow | None = None
        history: list[Message] = []
        try:
            if load_history:
                window = await self._context_window.build(
                    agent=agent,
                    session=session.context,
                    history=session.messages,
                    existing_summary=session.summary,
                    policy=policy,
                )
                history = window.render()
                if window.dropped:
                    await self._emit(
                        RunEventType.HISTORY_TRIMMED,
                        run,
                        {"dropped": len(window.dropped), "retained": len(window.retained)},
                    )

            loop = await enforcer.execute(attempt, on_retry)
            self._fill_run(run, loop, attempts, output_type, started)
            await self._hooks.run_blocking_post_hooks(agent, hook_context, run)
            interrupted = await self._commit(run, window)
        except asyncio.CancelledError:
            await self._abort(
                run, RunStatus.CANCELLED, "Run cancelled", attempts, hook_context, started
            )
            raise
        except Exception as e:
            await self._abort(run, RunStatus.FAILED, str(e), attempts, hook_context, started)
            if enforcer.cancellation_deferred:
                raise asyncio.CancelledError() from e
            raise

        self._hooks.launch_post_hooks(agent, hook_context, run)

        duration = time.perf_counter() - started
        metrics.record_run(agent.id, run.status.value, duration)
        await self._emit(
            RunEventType.RUN_COMPLETED,
            run,
            {"tool_executions": len(run.tool_executions), "duration_ms": duration * 1000},
        )
        logger.info(
            "run_completed",
            message_count=len(run.messages),
            tool_executions=len(run.tool_executions),
            duration_ms=round(duration * 1000, 2),
        )
        if interrupted or enforcer.cancellation_deferred:
            logger.info("cancellation_applied_after_completion")
            raise asyncio.CancelledError()
        return run

    def _fill_run(
        self,
        run: Run,
        loop: AgentLoop,
        attempts: list[AgentLoop],
        output_type: type | None,
        started: float,
    ) -> None:
        run.messages = list(loop.messages)
        run.tool_executions = list(loop.tool_executions)
        final = loop.final_message
        if output_type is not None and output_type is not str:
            run.raw_content = OpaqueValue.encode(loop.output).json_text.encode("utf-8")
        elif final is not None:
            run.raw_content = final.content.encode("utf-8")
        run.metrics = self._metrics(attempts, started)

    def _metrics(self, attempts: list[AgentLoop], started: float) -> RunMetrics:
        input_tokens = sum(loop.usage.input_tokens for loop in attempts)
        output_tokens = sum(loop.usage.output_tokens for loop in attempts)
        return RunMetrics(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    async def _commit(self, run: Run, window: ContextWindow | None) -> bool:
        """Store the completed run with its messages and summary in one step.

        The run is finalized only once the commit has landed. A cancellation
        arriving mid-commit waits for it, so the session never holds a run's
        messages without the run. Returns whether such a cancellation arrived.
        """
        finished = run.model_copy(deep=True)
        finished.finalize(RunStatus.COMPLETED)
        replace_summary = window is not None and window.summary_changed
        commit = asyncio.ensure_future(
            self._storage.commit_run(
                finished,
                summary=window.summary if window is not None else None,
                replace_summary=replace_summary,
            )
        )
        interrupted = False
        while True:
            try:
                await asyncio.shield(commit)
                break
            except asyncio.CancelledError:
                if commit.cancelled():
                    raise
                interrupted = True
                current = asyncio.current_task()
                if current is not None:
                    current.uncancel()
            except Exception as e:
                if interrupted:
                    raise asyncio.CancelledError() from e
                raise
        run.finalize(RunStatus.COMPLETED)
        await self._emit(RunEventType.RUN_SAVED, run, {"status": run.status.value})
        return interrupted

    async def _abort(
        self,
        run: Run,
        status: RunStatus,
        error: str,
        attempts: list[AgentLoop],
        hook_context: HookContext,
        started: float,
    ) -> None:
        """Finalize and store a run that did not complete.

        Failed and cancelled runs are kept for audit, but their messages are
        not added to the session's conversation memory.
        """
        if not run.messages:
            if attempts:
                run.messages = list(attempts[-1].messages)
                run.tool_executions = list(attempts[-1].tool_executions)
            else:
                run.messages = [Message.user(hook_context.user_message)]
        if run.metrics is None:
            run.metrics = self._metrics(attempts, started)
        run.finalize(status, error)

        try:
            await self._storage.save_run(run)
        except Exception as e:
            logger.error("run_not_persisted", status=status.value, error=str(e))

        metrics.record_run(run.agent_id, status.value, time.perf_counter() - started)
        event_type = (
            RunEventType.RUN_CANCELLED
            if status == RunStatus.CANCELLED
            else RunEventType.RUN_FAILED
        )
        await self._emit(event_type, run, {"error": error})
        if status == RunStatus.CANCELLED:
            logger.info("run_cancelled")
        else:
            logger.error("run_failed", error=error)

    async def _emit(self, event_type: RunEventType, run: Run, data: dict[str, Any]) -> None:
        if not self._observers:
            return
        await emit(
            self._observers,
            RunEvent(
                type=event_type,
                agent_id=run.agent_id,
                session_id=run.session_id,
                run_id=run.id,
                data=data,
            ),
        )
