"""Context window compaction.

Decides which part of a session's history is sent to the model, and asks a
summary hook to fold the dropped part into the session's rolling summary.
"""

from pydantic import BaseModel, Field

from conductor.domain import (
    Agent,
    AgentSessionContext,
    ExecutionPolicy,
    Message,
    MessageRole,
    SummaryHookContext,
)
from conductor.observability import metrics
from conductor.observability.logging import get_logger
from conductor.runtime.registry import DescriptorRegistry

logger = get_logger(__name__)

SUMMARY_PREFIX = "Conversation summary:"


def estimate_tokens(message: Message) -> int:
    """Rough token count at four characters per token."""
    chars = len(message.content)
    for call in message.tool_calls:
        chars += len(call.name) + len(call.arguments.json_text)
    return chars // 4


def split_history(
    history: list[Message],
    max_messages: int | None,
    max_tokens: int | None,
) -> tuple[list[Message], list[Message]]:
    """Split history into (retained, dropped), both in original order.

    Walks from the newest message backwards and stops at the first message
    that would exceed either cap; it and everything older is dropped.
    System messages are always retained and do not count against the caps.
    """
    keep = [False] * len(history)
    count = 0
    tokens = 0
    exhausted = False

    for index in range(len(history) - 1, -1, -1):
        message = history[index]
        if message.role == MessageRole.SYSTEM:
            keep[index] = True
            continue
        if exhausted:
            continue
        cost = estimate_tokens(message)
        if (max_messages is not None and count + 1 > max_messages) or (
            max_tokens is not None and tokens + cost > max_tokens
        ):
            exhausted = True
            continue
        count += 1
        tokens += cost
        keep[index] = True

    retained = [m for m, kept in zip(history, keep, strict=True) if kept]
    dropped = [m for m, kept in zip(history, keep, strict=True) if not kept]
    return retained, dropped


class ContextWindow(BaseModel):
    """The slice of history one run sends to the model."""

    retained: list[Message] = Field(default_factory=list, description="Messages kept")
    dropped: list[Message] = Field(default_factory=list, description="Messages trimmed")
    summary: str | None = Field(default=None, description="Summary after compaction")
    summary_changed: bool = Field(default=False, description="Summary hook replaced the summary")

    def render(self) -> list[Message]:
        """Retained messages, prefixed by the summary as a system message."""
        if not self.summary:
            return list(self.retained)
        return [Message.system(f"{SUMMARY_PREFIX}\n{self.summary}"), *self.retained]


class ContextWindowManager:
    """Builds context windows and runs summary hooks."""

    def __init__(self, registry: DescriptorRegistry) -> None:
        self._registry = registry

    async def build(
        self,
        *,
        agent: Agent,
        session: AgentSessionContext,
        history: list[Message],
        existing_summary: str | None,
        policy: ExecutionPolicy,
    ) -> ContextWindow:
        """Compact history under the policy's caps.

        A failing summary hook is logged and leaves the summary unchanged.
        """
        max_messages = policy.max_history_messages
        max_tokens = policy.max_history_tokens
        retained, dropped = split_history(history, max_messages, max_tokens)
        window = ContextWindow(retained=retained, dropped=dropped, summary=existing_summary)

        if not dropped:
            return window

        logger.debug(
            "history_trimmed",
            session_id=str(session.session_id),
            retained=len(retained),
            dropped=len(dropped),
        )

        hook_name = policy.summary_hook_name or agent.summary_hook_name
        if hook_name is None:
            return window
        hook = self._registry.get_summary_hook(hook_name)
        if hook is None:
            logger.warning("summary_hook_not_found", hook_name=hook_name, agent_id=agent.id)
            return window

        context = SummaryHookContext(
            agent=agent,
            session=session,
            existing_summary=existing_summary,
            dropped_messages=dropped,
            retained_messages=retained,
            max_history_messages=max_messages,
            max_history_tokens=max_tokens,
        )
        try:
            summary = await hook.func(context)
        except Exception as e:
            logger.error("summary_hook_failed", hook_name=hook_name, error=str(e))
            metrics.record_hook_failure(hook_name, "summary", True)
            return window

        if isinstance(summary, str) and summary:
            window.summary = summary
            window.summary_changed = summary != existing_summary
        return window
