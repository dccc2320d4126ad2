"""EmbeddedMessageStore: messages and sessions in a local libSQL file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crossmem.db import connect
from crossmem.errors import InvalidArgument, StorageError
from crossmem.memory import relevance
from crossmem.memory.models import Message, SessionRecord, as_utc, make_id, utcnow
from crossmem.memory.store import (
    MessageStore,
    require_content,
    require_role,
    require_session_id,
)

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from crossmem.memory.models import Role

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id         TEXT PRIMARY KEY,
        uid        TEXT NOT NULL,
        started_at TEXT NOT NULL,
        ended_at   TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_messages (
        id         TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        sent_at    TEXT NOT NULL,
        role       TEXT NOT NULL,
        content    TEXT NOT NULL,
        model      TEXT NOT NULL DEFAULT 'unknown',
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ai_messages_session ON ai_messages (session_id, sent_at)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_uid ON sessions (uid, ended_at)",
)

_MESSAGE_COLUMNS = "m.id, m.session_id, m.sent_at, m.role, m.content, m.model, m.created_at"


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO text, so lexical order matches chronological order."""
    return as_utc(value).isoformat(timespec="microseconds")


def _message_from_row(row: tuple) -> Message:
    return Message(
        id=row[0],
        session_id=row[1],
        sent_at=row[2],
        role=row[3],
        content=row[4],
        model=row[5],
        created_at=row[6],
    )


def _session_from_row(row: tuple) -> SessionRecord:
    return SessionRecord(id=row[0], uid=row[1], started_at=row[2], ended_at=row[3])


class EmbeddedMessageStore(MessageStore):
    """Persists messages in SQLite via libsql.

    Single-tenant: messages carry no ``uid`` column and reach a user only
    through ``sessions.uid``.  Pass an explicit *db_path* for test isolation
    (e.g. ``tmp_path / "test.db"``).
    """

    backend_name = "SQLite"

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _ensure_schema(self, db) -> None:  # noqa: ANN001
        if self._initialised:
            return
        for statement in _SCHEMA:
            await db.execute(statement)
        await db.commit()
        self._initialised = True

    # -- Messages --------------------------------------------------------------

    async def add_message(
        self,
        uid: str | None,
        session_id: str,
        role: str | Role,
        content: str,
        model: str = "unknown",
        sent_at: datetime | None = None,
    ) -> str:
        # uid is not stored; ownership comes from the sessions table.
        require_session_id(session_id)
        role = require_role(role)
        require_content(content)
        message_id = make_id()
        now = utcnow()
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                await db.execute(
                    """
                    INSERT INTO ai_messages
                        (id, session_id, sent_at, role, content, model, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message_id,
                        session_id,
                        _ts(sent_at or now),
                        role.value,
                        content,
                        model,
                        _ts(now),
                    ),
                )
                await db.commit()
        except Exception as exc:
            logger.exception("SQLite: failed to add message to session %s", session_id)
            raise StorageError(f"Failed to add message: {exc}") from exc
        return message_id

    async def get_messages_by_session(self, session_id: str) -> list[Message]:
        require_session_id(session_id)
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                cursor = await db.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS} FROM ai_messages m
                    WHERE m.session_id = ?
                    ORDER BY m.sent_at ASC, m.id ASC
                    """,
                    (session_id,),
                )
                rows = await cursor.fetchall()
            return [_message_from_row(row) for row in rows]
        except Exception as exc:
            raise StorageError(f"Failed to read session {session_id}: {exc}") from exc

    async def _fetch_recent(
        self, uid: str, limit: int, exclude_session_id: str | None
    ) -> list[Message]:
        where, filter_params = relevance.sql_filter("m.content")
        query = f"""
            SELECT {_MESSAGE_COLUMNS} FROM ai_messages m
            JOIN sessions s ON m.session_id = s.id
            WHERE s.uid = ?
              AND s.ended_at IS NOT NULL
              AND m.session_id != ?
              AND {where}
            ORDER BY {relevance.SQL_ORDER_BY}
            LIMIT ?
        """
        params = (uid, exclude_session_id or "", *filter_params, limit)
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                cursor = await db.execute(query, params)
                rows = await cursor.fetchall()
            return [_message_from_row(row) for row in rows]
        except Exception as exc:
            raise StorageError(f"Background query failed: {exc}") from exc

    # -- Session directory -------------------------------------------------------

    async def start_session(self, uid: str, session_id: str | None = None) -> str:
        if not uid:
            raise InvalidArgument("User ID is required to start a session.")
        session_id = session_id or make_id()
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                await db.execute(
                    "INSERT INTO sessions (id, uid, started_at, ended_at) VALUES (?, ?, ?, NULL)",
                    (session_id, uid, _ts(utcnow())),
                )
                await db.commit()
        except Exception as exc:
            raise StorageError(f"Failed to start session: {exc}") from exc
        logger.info("SQLite: started session %s for user %s", session_id, uid)
        return session_id

    async def end_session(self, session_id: str, ended_at: datetime | None = None) -> bool:
        require_session_id(session_id)
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                cursor = await db.execute(
                    "UPDATE sessions SET ended_at = ? WHERE id = ? AND ended_at IS NULL",
                    (_ts(ended_at or utcnow()), session_id),
                )
                await db.commit()
                return cursor.rowcount > 0
        except Exception as exc:
            raise StorageError(f"Failed to end session {session_id}: {exc}") from exc

    async def get_completed_sessions(self, uid: str) -> list[SessionRecord]:
        try:
            async with connect(self._db_path) as db:
                await self._ensure_schema(db)
                cursor = await db.execute(
                    """
                    SELECT id, uid, started_at, ended_at FROM sessions
                    WHERE uid = ? AND ended_at IS NOT NULL
                    ORDER BY started_at ASC, id ASC
                    """,
                    (uid,),
                )
                rows = await cursor.fetchall()
            return [_session_from_row(row) for row in rows]
        except Exception as exc:
            raise StorageError(f"Failed to list sessions for {uid}: {exc}") from exc
