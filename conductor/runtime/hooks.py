"""Pre/post hook execution with blocking and background semantics."""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from conductor.domain import (
    Agent,
    HookContext,
    RegisteredPostHook,
    RegisteredPreHook,
    Run,
    utc_now,
)
from conductor.observability import metrics
from conductor.observability.logging import get_logger
from conductor.runtime.registry import DescriptorRegistry

logger = get_logger(__name__)

HookPhase = Literal["pre", "post"]


class HookFailure(BaseModel):
    """A background hook failure kept for inspection."""

    hook_name: str = Field(..., description="Failed hook")
    phase: HookPhase = Field(..., description="pre or post")
    error: str = Field(..., description="Error message")
    occurred_at: datetime = Field(default_factory=utc_now)


class BackgroundTaskRegistry:
    """Tracks fire-and-forget tasks until they finish.

    Each task is stored under a fresh UUID on launch and removed by its
    done-callback, whatever the outcome. Every mutation happens on the event
    loop thread without suspending, so the table needs no lock.
    """

    def __init__(self) -> None:
        self._tasks: dict[UUID, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def launch(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> UUID:
        task_id = uuid4()
        task = asyncio.create_task(coro, name=name)
        self._tasks[task_id] = task
        task.add_done_callback(lambda _task: self._discard(task_id))
        metrics.set_background_hooks(len(self._tasks))
        return task_id

    def _discard(self, task_id: UUID) -> None:
        if self._tasks.pop(task_id, None) is not None:
            metrics.set_background_hooks(len(self._tasks))

    async def wait_all(self) -> None:
        """Wait for every task tracked at the time of the call."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def cancel_all(self) -> int:
        """Request cancellation of every tracked task and forget them all.

        Returns:
            Number of tasks cancelled
        """
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        metrics.set_background_hooks(0)
        return len(tasks)


class HookPipeline:
    """Resolves an agent's hooks by name and runs them.

    Blocking hooks run in declaration order and their errors propagate.
    Non-blocking hooks are launched in declaration order against a deep copy
    of the context; their errors are logged and kept in recent_failures.
    """

    def __init__(
        self,
        registry: DescriptorRegistry,
        background: BackgroundTaskRegistry | None = None,
        max_recorded_failures: int = 100,
    ) -> None:
        self._registry = registry
        self._background = background or BackgroundTaskRegistry()
        self._failures: deque[HookFailure] = deque(maxlen=max_recorded_failures)

    @property
    def background(self) -> BackgroundTaskRegistry:
        return self._background

    @property
    def recent_failures(self) -> list[HookFailure]:
        return list(self._failures)

    def resolve_pre_hooks(
        self, agent: Agent
    ) -> tuple[list[RegisteredPreHook], list[RegisteredPreHook]]:
        """Return (blocking, non_blocking) pre-hooks in declaration order."""
        hooks = []
        for name in agent.pre_hook_names:
            hook = self._registry.get_pre_hook(name)
            if hook is None:
                logger.warning("pre_hook_not_found", hook_name=name, agent_id=agent.id)
                continue
            hooks.append(hook)
        return [h for h in hooks if h.blocking], [h for h in hooks if not h.blocking]

    def resolve_post_hooks(
        self, agent: Agent
    ) -> tuple[list[RegisteredPostHook], list[RegisteredPostHook]]:
        """Return (blocking, non_blocking) post-hooks in declaration order."""
        hooks = []
        for name in agent.post_hook_names:
            hook = self._registry.get_post_hook(name)
            if hook is None:
                logger.warning("post_hook_not_found", hook_name=name, agent_id=agent.id)
                continue
            hooks.append(hook)
        return [h for h in hooks if h.blocking], [h for h in hooks if not h.blocking]

    async def run_pre_hooks(self, agent: Agent, context: HookContext) -> None:
        """Run blocking pre-hooks on the live context, then launch the rest.

        Raises:
            Exception: Whatever a blocking pre-hook raises
        """
        blocking, non_blocking = self.resolve_pre_hooks(agent)
        for hook in blocking:
            await self._run_blocking(hook.name, "pre", lambda h=hook: h.func(context))
        for hook in non_blocking:
            snapshot = context.model_copy(deep=True)
            self._launch(hook.name, "pre", lambda h=hook, c=snapshot: h.func(c))

    async def run_blocking_post_hooks(self, agent: Agent, context: HookContext, run: Run) -> None:
        """Run blocking post-hooks in order against one copy of the run.

        The copy is taken before the run is finalized, so hooks see it in
        RUNNING status; a hook that raises fails the run.

        Raises:
            Exception: Whatever a blocking post-hook raises
        """
        blocking, _ = self.resolve_post_hooks(agent)
        if not blocking:
            return
        snapshot = run.model_copy(deep=True)
        for hook in blocking:
            await self._run_blocking(hook.name, "post", lambda h=hook: h.func(context, snapshot))

    def launch_post_hooks(self, agent: Agent, context: HookContext, run: Run) -> list[UUID]:
        """Launch non-blocking post-hooks against copies of the context and run."""
        _, non_blocking = self.resolve_post_hooks(agent)
        task_ids = []
        for hook in non_blocking:
            context_copy = context.model_copy(deep=True)
            run_copy = run.model_copy(deep=True)
            task_ids.append(
                self._launch(
                    hook.name, "post", lambda h=hook, c=context_copy, r=run_copy: h.func(c, r)
                )
            )
        return task_ids

    async def wait_for_background_hooks(self) -> None:
        await self._background.wait_all()

    def cancel_background_hooks(self) -> int:
        return self._background.cancel_all()

    async def _run_blocking(
        self, name: str, phase: HookPhase, call: Callable[[], Awaitable[None]]
    ) -> None:
        try:
            await call()
        except Exception as e:
            logger.error("hook_failed", hook_name=name, phase=phase, blocking=True, error=str(e))
            metrics.record_hook_failure(name, phase, True)
            raise

    def _launch(self, name: str, phase: HookPhase, call: Callable[[], Awaitable[None]]) -> UUID:
        return self._background.launch(
            self._run_detached(name, phase, call), name=f"hook:{phase}:{name}"
        )

    async def _run_detached(
        self, name: str, phase: HookPhase, call: Callable[[], Awaitable[None]]
    ) -> None:
        try:
            await call()
        except asyncio.CancelledError:
            logger.info("background_hook_cancelled", hook_name=name, phase=phase)
            raise
        except Exception as e:
            logger.warning(
                "hook_failed", hook_name=name, phase=phase, blocking=False, error=str(e)
            )
            metrics.record_hook_failure(name, phase, False)
            self._failures.append(HookFailure(hook_name=name, phase=phase, error=str(e)))
