"""JSON-file implementation of AgentStorage.

Layout: <root>/agents/<agent_id>/sessions/<session_id>/session.json, one
document per session holding its messages, runs and data.
"""

import asyncio
import os
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar
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
from conductor.observability.logging import get_logger
from conductor.storage.store import AgentStorage, compute_stats

logger = get_logger(__name__)

T = TypeVar("T")

ROOT_ENV_VAR = "CONDUCTOR_STORAGE_ROOT"
SESSION_FILE = "session.json"


class FileAgentStorage(AgentStorage):
    """Stores each session as a JSON document on disk.

    Every mutation reads, modifies and rewrites one session file under a
    store-wide lock. Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        """Initialize file storage.

        Args:
            root: Storage root; defaults to CONDUCTOR_STORAGE_ROOT or ./.conductor
        """
        self._root = Path(root or os.environ.get(ROOT_ENV_VAR) or ".conductor")
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _session_dir(self, agent_id: str, session_id: UUID) -> Path:
        return self._root / "agents" / agent_id / "sessions" / str(session_id)

    def _find_file(self, session_id: UUID) -> Path | None:
        matches = list(self._root.glob(f"agents/*/sessions/{session_id}/{SESSION_FILE}"))
        return matches[0] if matches else None

    def _read(self, path: Path) -> Session:
        return Session.model_validate_json(path.read_text(encoding="utf-8"))

    def _write(self, session: Session) -> None:
        directory = self._session_dir(session.agent_id, session.id)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / SESSION_FILE
        tmp = directory / f"{SESSION_FILE}.tmp"
        tmp.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(target)

    def _load_all(self) -> list[Session]:
        sessions = []
        for path in self._root.glob(f"agents/*/sessions/*/{SESSION_FILE}"):
            try:
                sessions.append(self._read(path))
            except ValueError as e:
                logger.warning("session_file_unreadable", path=str(path), error=str(e))
        return sessions

    def _load_one(self, session_id: UUID) -> Session:
        path = self._find_file(session_id)
        if path is None:
            raise SessionNotFoundError(session_id)
        return self._read(path)

    async def _mutate(self, session_id: UUID, change: Callable[[Session], T]) -> T:
        def apply() -> T:
            session = self._load_one(session_id)
            result = change(session)
            session.touch()
            self._write(session)
            return result

        async with self._lock:
            return await asyncio.to_thread(apply)

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            await asyncio.to_thread(self._write, session)
        logger.debug("session_file_created", session_id=str(session.id))
        return session

    async def get_session(
        self,
        session_id: UUID,
        *,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Session | None:
        path = await asyncio.to_thread(self._find_file, session_id)
        if path is None:
            return None
        session = await asyncio.to_thread(self._read, path)
        if agent_id is not None and session.agent_id != agent_id:
            return None
        if user_id is not None and session.user_id != user_id:
            return None
        return session

    async def list_sessions(self, criteria: SessionFilter | None = None) -> list[Session]:
        criteria = criteria or SessionFilter()
        return criteria.apply(await asyncio.to_thread(self._load_all))

    async def delete_session(self, session_id: UUID) -> bool:
        async with self._lock:
            path = await asyncio.to_thread(self._find_file, session_id)
            if path is None:
                return False
            await asyncio.to_thread(shutil.rmtree, path.parent)
            return True

    async def rename_session(self, session_id: UUID, name: str | None) -> Session:
        def change(session: Session) -> Session:
            session.name = name
            return session

        return await self._mutate(session_id, change)

    async def save_run(self, run: Run) -> None:
        await self._mutate(run.session_id, lambda session: _put_run(session, run))

    async def commit_run(
        self,
        run: Run,
        *,
        summary: str | None = None,
        replace_summary: bool = False,
    ) -> None:
        def change(session: Session) -> None:
            session.messages.extend(run.messages)
            _put_run(session, run)
            if replace_summary:
                session.summary = summary

        await self._mutate(run.session_id, change)

    async def get_run(self, run_id: UUID) -> Run | None:
        for session in await asyncio.to_thread(self._load_all):
            run = session.get_run(run_id)
            if run is not None:
                return run
        return None

    async def remove_run(self, session_id: UUID, run_id: UUID) -> bool:
        def change(session: Session) -> bool:
            remaining = [r for r in session.runs if r.id != run_id]
            removed = len(remaining) != len(session.runs)
            session.runs = remaining
            return removed

        return await self._mutate(session_id, change)

    async def append_messages(self, session_id: UUID, messages: list[Message]) -> None:
        await self._mutate(session_id, lambda session: session.messages.extend(messages))

    async def get_messages(self, session_id: UUID, limit: int | None = None) -> list[Message]:
        messages = (await self.load_session(session_id)).messages
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    async def clear_messages(self, session_id: UUID, older_than: datetime | None = None) -> int:
        def change(session: Session) -> int:
            before = len(session.messages)
            if older_than is None:
                session.messages = []
            else:
                session.messages = [m for m in session.messages if m.created_at >= older_than]
            return before - len(session.messages)

        return await self._mutate(session_id, change)

    async def update_summary(self, session_id: UUID, summary: str | None) -> None:
        def change(session: Session) -> None:
            session.summary = summary

        await self._mutate(session_id, change)

    async def update_session_data(
        self,
        session_id: UUID,
        data: dict[str, OpaqueValue],
        *,
        merge: bool = True,
    ) -> None:
        def change(session: Session) -> None:
            session.session_data = {**session.session_data, **data} if merge else dict(data)

        await self._mutate(session_id, change)

    async def get_stats(self) -> StorageStats:
        return compute_stats(await asyncio.to_thread(self._load_all))


def _put_run(session: Session, run: Run) -> None:
    for index, existing in enumerate(session.runs):
        if existing.id == run.id:
            session.runs[index] = run
            break
    else:
        session.runs.append(run)
    if run.session_data_updates:
        session.session_data = {**session.session_data, **run.session_data_updates}
