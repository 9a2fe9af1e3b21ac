"""Timeout, retry and cancellation handling around one logical attempt."""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

from conductor.domain import ExecutionPolicy
from conductor.errors import ConductorError, ExecutionTimeoutError
from conductor.observability import metrics
from conductor.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

AttemptFactory = Callable[[int], Coroutine[Any, Any, T]]
RetryCallback = Callable[[int, Exception], Awaitable[None]]


def is_retryable(error: Exception) -> bool:
    """Runtime errors declare retryability; any other failure is retried."""
    if isinstance(error, ConductorError):
        return error.retryable
    return True


class ExecutionPolicyEnforcer:
    """Runs attempts under one ExecutionPolicy.

    Each attempt is a fresh coroutine from the factory, so a retry restarts
    the loop from the beginning rather than resuming it. Already executed
    tool calls are executed again on retry.

    With propagate_cancellation, cancelling the calling task cancels the
    in-flight attempt and nothing is retried. Without it, the attempt is
    shielded and runs to completion; its outcome is returned or raised as is
    and no further attempts start. The request is not dropped: the caller
    checks cancellation_deferred and cancels itself once it has recorded the
    outcome.
    """

    def __init__(self, policy: ExecutionPolicy, agent_id: str = "") -> None:
        self._policy = policy
        self._agent_id = agent_id
        self._cancellation_deferred = False

    @property
    def policy(self) -> ExecutionPolicy:
        return self._policy

    @property
    def cancellation_deferred(self) -> bool:
        """Whether a cancellation request arrived and was held back."""
        return self._cancellation_deferred

    async def execute(
        self,
        attempt: AttemptFactory[T],
        on_retry: RetryCallback | None = None,
    ) -> T:
        """Run attempts until one succeeds or the policy gives up.

        Raises:
            ExecutionTimeoutError: If the final attempt timed out
            asyncio.CancelledError: If cancelled with propagation enabled
            Exception: The final attempt's error, unchanged
        """
        max_attempts = self._policy.max_attempts
        for number in range(1, max_attempts + 1):
            try:
                result = await self._run_attempt(attempt(number))
            except asyncio.CancelledError:
                metrics.record_attempt(self._agent_id, "cancelled")
                raise
            except Exception as e:
                outcome = "timeout" if isinstance(e, ExecutionTimeoutError) else "failed"
                metrics.record_attempt(self._agent_id, outcome)
                if number >= max_attempts or not is_retryable(e) or self._cancellation_deferred:
                    raise
                logger.warning(
                    "attempt_failed_retrying",
                    agent_id=self._agent_id,
                    attempt=number,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                if on_retry is not None:
                    await on_retry(number, e)
                continue
            metrics.record_attempt(self._agent_id, "succeeded")
            return result

        raise AssertionError("unreachable")

    async def _run_attempt(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._policy.propagate_cancellation:
            return await self._with_timeout(coro)
        return await self._run_shielded(self._with_timeout(coro))

    async def _with_timeout(self, coro: Coroutine[Any, Any, T]) -> T:
        timeout = self._policy.timeout
        if timeout is None:
            return await coro
        try:
            async with asyncio.timeout(timeout) as scope:
                return await coro
        except TimeoutError as e:
            if scope.expired():
                raise ExecutionTimeoutError(timeout) from e
            raise

    async def _run_shielded(self, coro: Coroutine[Any, Any, T]) -> T:
        task = asyncio.ensure_future(coro)
        while True:
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if task.cancelled():
                    raise
                self._cancellation_deferred = True
                current = asyncio.current_task()
                if current is not None:
                    current.uncancel()
                logger.info("cancellation_deferred", agent_id=self._agent_id)
