"""In-memory implementation of AgentStorage."""

import asyncio
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
from conductor.storage.store import AgentStorage, compute_stats


class InMemoryAgentStorage(AgentStorage):
    """In-memory implementation of AgentStorage for testing and development.

    Uses dict storage with linear scans for queries. One lock serializes
    mutations; reads hand out deep copies.
    """

    def __init__(self) -> None:
        self._sessions: dict[UUID, Session] = {}
        self._lock = asyncio.Lock()

    def _require(self, session_id: UUID) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
        return session

    async def get_session(
        self,
        session_id: UUID,
        *,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if agent_id is not None and session.agent_id != agent_id:
            return None
        if user_id is not None and session.user_id != user_id:
            return None
        return session.model_copy(deep=True)

    async def list_sessions(self, criteria: SessionFilter | None = None) -> list[Session]:
        criteria = criteria or SessionFilter()
        return [s.model_copy(deep=True) for s in criteria.apply(list(self._sessions.values()))]

    async def delete_session(self, session_id: UUID) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def rename_session(self, session_id: UUID, name: str | None) -> Session:
        async with self._lock:
            session = self._require(session_id)
            session.name = name
            session.touch()
            return session.model_copy(deep=True)

    def _put_run(self, session: Session, run: Run) -> None:
        stored = run.model_copy(deep=True)
        for index, existing in enumerate(session.runs):
            if existing.id == run.id:
                session.runs[index] = stored
                break
        else:
            session.runs.append(stored)
        if run.session_data_updates:
            session.session_data = {**session.session_data, **run.session_data_updates}

    async def save_run(self, run: Run) -> None:
        async with self._lock:
            session = self._require(run.session_id)
            self._put_run(session, run)
            session.touch()

    async def commit_run(
        self,
        run: Run,
        *,
        summary: str | None = None,
        replace_summary: bool = False,
    ) -> None:
        async with self._lock:
            session = self._require(run.session_id)
            session.messages.extend(run.messages)
            self._put_run(session, run)
            if replace_summary:
                session.summary = summary
            session.touch()

    async def get_run(self, run_id: UUID) -> Run | None:
        for session in self._sessions.values():
            run = session.get_run(run_id)
            if run is not None:
                return run.model_copy(deep=True)
        return None

    async def remove_run(self, session_id: UUID, run_id: UUID) -> bool:
        async with self._lock:
            session = self._require(session_id)
            remaining = [r for r in session.runs if r.id != run_id]
            if len(remaining) == len(session.runs):
                return False
            session.runs = remaining
            session.touch()
            return True

    async def append_messages(self, session_id: UUID, messages: list[Message]) -> None:
        async with self._lock:
            session = self._require(session_id)
            session.messages.extend(messages)
            session.touch()

    async def get_messages(self, session_id: UUID, limit: int | None = None) -> list[Message]:
        messages = list(self._require(session_id).messages)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    async def clear_messages(self, session_id: UUID, older_than: datetime | None = None) -> int:
        async with self._lock:
            session = self._require(session_id)
            before = len(session.messages)
            if older_than is None:
                session.messages = []
            else:
                session.messages = [m for m in session.messages if m.created_at >= older_than]
            session.touch()
            return before - len(session.messages)

    async def update_summary(self, session_id: UUID, summary: str | None) -> None:
        async with self._lock:
            session = self._require(session_id)
            session.summary = summary
            session.touch()

    async def update_session_data(
        self,
        session_id: UUID,
        data: dict[str, OpaqueValue],
        *,
        merge: bool = True,
    ) -> None:
        async with self._lock:
            session = self._require(session_id)
            session.session_data = {**session.session_data, **data} if merge else dict(data)
            session.touch()

    async def get_stats(self) -> StorageStats:
        return compute_stats(list(self._sessions.values()))
