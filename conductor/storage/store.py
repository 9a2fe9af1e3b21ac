"""AgentStorage abstract interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from conductor.domain import (
    Message,
    OpaqueValue,
    Run,
    Session,
    SessionFilter,
    StorageStats,
)
from conductor.errors import SessionNotFoundError


class AgentStorage(ABC):
    """Abstract interface for session and run persistence.

    Implementations must apply each mutation atomically with respect to
    other mutations of the same session, appending to message and run
    lists rather than overwriting them, so concurrent runs on one session
    never lose each other's updates. Reads return copies.
    """

    @abstractmethod
    async def create_session(self, session: Session) -> Session:
        """Store a new session."""
        pass

    @abstractmethod
    async def get_session(
        self,
        session_id: UUID,
        *,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Session | None:
        """Get a session by ID, optionally requiring an agent and user."""
        pass

    async def load_session(self, session_id: UUID) -> Session:
        """Get a session by ID.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @abstractmethod
    async def list_sessions(self, criteria: SessionFilter | None = None) -> list[Session]:
        """List sessions matching the filter."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: UUID) -> bool:
        """Delete a session with its runs and messages."""
        pass

    @abstractmethod
    async def rename_session(self, session_id: UUID, name: str | None) -> Session:
        """Set or clear a session's display name."""
        pass

    @abstractmethod
    async def save_run(self, run: Run) -> None:
        """Append a run to its session, replacing a stored run with the same ID."""
        pass

    @abstractmethod
    async def commit_run(
        self,
        run: Run,
        *,
        summary: str | None = None,
        replace_summary: bool = False,
    ) -> None:
        """Store a finished run together with its messages in one mutation.

        Appends the run's messages to the session's memory, saves the run
        and, with replace_summary, sets the rolling summary. Either all of it
        is stored or none of it.

        Raises:
            SessionNotFoundError: If the run's session does not exist
        """
        pass

    @abstractmethod
    async def get_run(self, run_id: UUID) -> Run | None:
        """Get a run by ID from any session."""
        pass

    @abstractmethod
    async def remove_run(self, session_id: UUID, run_id: UUID) -> bool:
        """Remove a run from a session."""
        pass

    @abstractmethod
    async def append_messages(self, session_id: UUID, messages: list[Message]) -> None:
        """Append messages to a session's conversation memory."""
        pass

    @abstractmethod
    async def get_messages(self, session_id: UUID, limit: int | None = None) -> list[Message]:
        """Get a session's messages, the most recent `limit` when given."""
        pass

    @abstractmethod
    async def clear_messages(self, session_id: UUID, older_than: datetime | None = None) -> int:
        """Remove messages, all or those created before a time. Returns the count removed."""
        pass

    @abstractmethod
    async def update_summary(self, session_id: UUID, summary: str | None) -> None:
        """Replace a session's rolling summary."""
        pass

    @abstractmethod
    async def update_session_data(
        self,
        session_id: UUID,
        data: dict[str, OpaqueValue],
        *,
        merge: bool = True,
    ) -> None:
        """Merge into or replace a session's data map."""
        pass

    async def get_session_data(self, session_id: UUID) -> dict[str, OpaqueValue]:
        """Get a session's data map.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = await self.load_session(session_id)
        return session.session_data

    @abstractmethod
    async def get_stats(self) -> StorageStats:
        """Aggregate counts across all sessions."""
        pass


def compute_stats(sessions: list[Session]) -> StorageStats:
    """Build StorageStats from a full list of sessions."""
    if not sessions:
        return StorageStats()
    created = [s.created_at for s in sessions]
    return StorageStats(
        total_sessions=len(sessions),
        total_runs=sum(s.run_count for s in sessions),
        total_messages=sum(s.message_count for s in sessions),
        oldest_session=min(created),
        newest_session=max(created),
    )
