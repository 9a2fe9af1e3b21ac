"""Session models for conversation state."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from conductor.domain.agent import AgentSessionContext
from conductor.domain.messages import Message, utc_now
from conductor.domain.opaque import OpaqueValue
from conductor.domain.run import Run


class Session(BaseModel):
    """Durable conversation state shared by a sequence of runs.

    Messages and runs are append-only during normal operation. Storage
    backends perform the appends; the orchestrator never overwrites these
    lists wholesale.
    """

    model_config = ConfigDict(frozen=False, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    agent_id: str = Field(..., description="Serving agent")
    user_id: str = Field(..., description="Conversation owner")
    name: str | None = Field(default=None, description="Optional display name")
    messages: list[Message] = Field(default_factory=list, description="Conversation memory")
    runs: list[Run] = Field(default_factory=list, description="Runs in execution order")
    session_data: dict[str, OpaqueValue] = Field(
        default_factory=dict, description="Free-form session data"
    )
    summary: str | None = Field(default=None, description="Rolling summary of trimmed history")
    metadata: dict[str, OpaqueValue] = Field(default_factory=dict, description="Free-form metadata")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update time")

    @property
    def context(self) -> AgentSessionContext:
        return AgentSessionContext(agent_id=self.agent_id, user_id=self.user_id, session_id=self.id)

    @property
    def run_count(self) -> int:
        return len(self.runs)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def latest_run(self) -> Run | None:
        return self.runs[-1] if self.runs else None

    def get_run(self, run_id: UUID) -> Run | None:
        for run in self.runs:
            if run.id == run_id:
                return run
        return None

    def touch(self) -> None:
        self.updated_at = utc_now()


class SessionSortField(str, Enum):
    """Field used to order session listings."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    NAME = "name"


class SessionFilter(BaseModel):
    """Criteria for listing sessions."""

    agent_id: str | None = Field(default=None, description="Only sessions of this agent")
    user_id: str | None = Field(default=None, description="Only sessions of this user")
    sort_by: SessionSortField = Field(
        default=SessionSortField.UPDATED_AT, description="Ordering field"
    )
    descending: bool = Field(default=True, description="Newest or last-named first")
    limit: int | None = Field(default=None, ge=1, description="Maximum results")
    offset: int = Field(default=0, ge=0, description="Results to skip")

    def apply(self, sessions: list[Session]) -> list[Session]:
        """Filter, sort and page a list of sessions."""
        results = [
            s
            for s in sessions
            if (self.agent_id is None or s.agent_id == self.agent_id)
            and (self.user_id is None or s.user_id == self.user_id)
        ]
        if self.sort_by == SessionSortField.NAME:
            results.sort(key=lambda s: s.name or "", reverse=self.descending)
        elif self.sort_by == SessionSortField.CREATED_AT:
            results.sort(key=lambda s: s.created_at, reverse=self.descending)
        else:
            results.sort(key=lambda s: s.updated_at, reverse=self.descending)
        results = results[self.offset :]
        if self.limit is not None:
            results = results[: self.limit]
        return results


class StorageStats(BaseModel):
    """Aggregate counts across a storage backend."""

    total_sessions: int = Field(default=0, description="Number of sessions")
    total_runs: int = Field(default=0, description="Number of runs across sessions")
    total_messages: int = Field(default=0, description="Number of messages across sessions")
    oldest_session: datetime | None = Field(default=None, description="Earliest creation time")
    newest_session: datetime | None = Field(default=None, description="Latest creation time")
