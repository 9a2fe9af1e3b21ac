"""Run lifecycle events.

The orchestrator emits these to every registered observer. Observers are
for observability only: their failures are logged and never affect a run.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from conductor.domain.messages import utc_now
from conductor.observability.logging import get_logger

logger = get_logger(__name__)


class RunEventType(str, Enum):
    """Event types in category.name format."""

    RUN_STARTED = "run.started"
    RUN_COMPLETED = "run.completed"
    RUN_FAILED = "run.failed"
    RUN_CANCELLED = "run.cancelled"
    RUN_RETRYING = "run.retrying"
    RUN_SAVED = "run.saved"

    TRANSCRIPT_BUILT = "model.transcript_built"
    MODEL_REQUEST_SENDING = "model.request_sending"
    MODEL_RESPONSE_RECEIVED = "model.response_received"

    TOOL_STARTED = "tool.started"
    TOOL_COMPLETED = "tool.completed"
    TOOL_REJECTED = "tool.rejected"

    HISTORY_TRIMMED = "history.trimmed"

    SESSION_CREATED = "session.created"


class RunEvent(BaseModel):
    """Lifecycle event emitted by the orchestrator."""

    type: RunEventType = Field(..., description="Event type")
    agent_id: str = Field(..., description="Agent being run")
    session_id: UUID = Field(..., description="Session being served")
    run_id: UUID | None = Field(default=None, description="Run, once created")
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")

    @property
    def category(self) -> str:
        """Category part of the type, e.g. 'run' for 'run.started'."""
        return self.type.value.split(".")[0]

    def matches_pattern(self, pattern: str) -> bool:
        """Check the event against '*', 'category.*' or a full type."""
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            return self.category == pattern[:-2]
        return self.type.value == pattern


class RunObserver(ABC):
    """Receives run lifecycle events."""

    @abstractmethod
    async def on_event(self, event: RunEvent) -> None:
        """Handle one event."""
        pass


class LoggingObserver(RunObserver):
    """Writes every matching event to the structured log."""

    def __init__(self, pattern: str = "*") -> None:
        self._pattern = pattern

    async def on_event(self, event: RunEvent) -> None:
        if not event.matches_pattern(self._pattern):
            return
        logger.info(
            event.type.value,
            agent_id=event.agent_id,
            session_id=str(event.session_id),
            run_id=str(event.run_id) if event.run_id else None,
            **event.data,
        )


class RecordingObserver(RunObserver):
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[RunEvent] = []

    async def on_event(self, event: RunEvent) -> None:
        self.events.append(event)

    def types(self) -> list[RunEventType]:
        return [event.type for event in self.events]


async def emit(observers: list[RunObserver], event: RunEvent) -> None:
    """Deliver an event to every observer, logging observer failures."""
    for observer in observers:
        try:
            await observer.on_event(event)
        except Exception as e:
            logger.warning(
                "observer_failed",
                observer=type(observer).__name__,
                event_type=event.type.value,
                error=str(e),
            )
