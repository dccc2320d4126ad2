"""CloudMessageStore: messages and sessions in Google Cloud Firestore.

Layout::

    sessions/{session_id}                  uid, started_at, ended_at
    sessions/{session_id}/ai_messages/{id} uid, session_id, sent_at, role,
                                           content (encrypted), model, created_at

Message ``content`` is encrypted by a :class:`FieldConverter` before it is
written and decrypted after it is read, so nothing readable sits in the
document store.  Relevance filtering runs in-process after decryption.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from crossmem.config import settings
from crossmem.errors import InvalidArgument, StorageError
from crossmem.memory.models import Message, SessionRecord, as_utc, make_id, utcnow
from crossmem.memory.relevance import filter_and_rank
from crossmem.memory.store import (
    MessageStore,
    require_content,
    require_role,
    require_session_id,
)

if TYPE_CHECKING:
    from datetime import datetime

    from crossmem.memory.converter import FieldConverter
    from crossmem.memory.models import Role

logger = logging.getLogger(__name__)

SESSIONS = "sessions"
AI_MESSAGES = "ai_messages"


class CloudMessageStore(MessageStore):
    """Persists messages in Firestore, one subcollection per session.

    *client* is a ``google.cloud.firestore.AsyncClient`` (or anything with the
    same surface).  *concurrency* bounds how many sessions are read at once
    during background retrieval.
    """

    backend_name = "Firebase"

    def __init__(
        self,
        client: Any,
        converter: FieldConverter,
        concurrency: int | None = None,
    ) -> None:
        self._client = client
        self._converter = converter
        self._concurrency = concurrency or settings.background_fetch_concurrency

    # -- Internal helpers ------------------------------------------------------

    def _messages_col(self, session_id: str) -> Any:
        require_session_id(session_id)
        return self._client.collection(SESSIONS, session_id, AI_MESSAGES)

    def _to_message(self, doc_id: str, data: dict[str, Any]) -> Message:
        decoded = self._converter.from_storage(data)
        return Message(
            id=doc_id,
            session_id=decoded["session_id"],
            uid=decoded.get("uid"),
            role=decoded["role"],
            content=decoded.get("content") or "",
            model=decoded.get("model") or "unknown",
            sent_at=as_utc(decoded["sent_at"]),
            created_at=as_utc(decoded.get("created_at") or decoded["sent_at"]),
        )

    async def _read_session(self, session_id: str) -> list[Message]:
        query = self._messages_col(session_id).order_by("sent_at")
        messages = [self._to_message(doc.id, doc.to_dict()) async for doc in query.stream()]
        messages.sort(key=lambda m: (m.sent_at, m.id))
        return messages

    async def _list_sessions(self, uid: str) -> list[SessionRecord]:
        query = self._client.collection(SESSIONS).where(
            filter=firestore.FieldFilter("uid", "==", uid)
        )
        records = []
        async for doc in query.stream():
            data = doc.to_dict()
            ended_at = data.get("ended_at")
            records.append(
                SessionRecord(
                    id=doc.id,
                    uid=data["uid"],
                    started_at=as_utc(data["started_at"]),
                    ended_at=as_utc(ended_at) if ended_at else None,
                )
            )
        return records

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
        col = self._messages_col(session_id)
        role = require_role(role)
        require_content(content)
        now = utcnow()
        record = {
            "uid": uid,
            "session_id": session_id,
            "sent_at": as_utc(sent_at) if sent_at else now,
            "role": role.value,
            "content": content,
            "model": model,
            "created_at": now,
        }
        try:
            _, doc_ref = await col.add(self._converter.to_storage(record))
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Firebase: failed to add message to session %s", session_id)
            raise StorageError(f"Failed to add message: {exc}") from exc
        return doc_ref.id

    async def get_messages_by_session(self, session_id: str) -> list[Message]:
        require_session_id(session_id)
        try:
            return await self._read_session(session_id)
        except Exception as exc:
            raise StorageError(f"Failed to read session {session_id}: {exc}") from exc

    async def _fetch_recent(
        self, uid: str, limit: int, exclude_session_id: str | None
    ) -> list[Message]:
        try:
            sessions = [
                s
                for s in await self._list_sessions(uid)
                if s.completed and s.id != exclude_session_id
            ]
        except Exception as exc:
            raise StorageError(f"Background query failed: {exc}") from exc

        semaphore = asyncio.Semaphore(self._concurrency)

        async def read(session_id: str) -> list[Message]:
            async with semaphore:
                return await self._read_session(session_id)

        # One failed read cancels the rest.
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(read(s.id)) for s in sessions]
        except ExceptionGroup as eg:
            first = eg.exceptions[0]
            raise StorageError(f"Background query failed: {first}") from first

        candidates = [message for task in tasks for message in task.result()]
        return filter_and_rank(candidates, limit)

    # -- Session directory -------------------------------------------------------

    async def start_session(self, uid: str, session_id: str | None = None) -> str:
        if not uid:
            raise InvalidArgument("User ID is required to start a session.")
        session_id = session_id or make_id()
        try:
            await self._client.collection(SESSIONS).document(session_id).set(
                {"uid": uid, "started_at": utcnow(), "ended_at": None}
            )
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Failed to start session: {exc}") from exc
        logger.info("Firebase: started session %s for user %s", session_id, uid)
        return session_id

    async def end_session(self, session_id: str, ended_at: datetime | None = None) -> bool:
        require_session_id(session_id)
        ref = self._client.collection(SESSIONS).document(session_id)
        try:
            snapshot = await ref.get()
            if not snapshot.exists or snapshot.to_dict().get("ended_at"):
                return False
            await ref.update({"ended_at": as_utc(ended_at) if ended_at else utcnow()})
        except google_exceptions.GoogleAPIError as exc:
            raise StorageError(f"Failed to end session {session_id}: {exc}") from exc
        return True

    async def get_completed_sessions(self, uid: str) -> list[SessionRecord]:
        try:
            sessions = await self._list_sessions(uid)
        except Exception as exc:
            raise StorageError(f"Failed to list sessions for {uid}: {exc}") from exc
        completed = [s for s in sessions if s.completed]
        completed.sort(key=lambda s: (s.started_at, s.id))
        return completed
