"""MessageStore: the contract both storage backends satisfy.

A store persists append-only conversation messages, keeps a small session
directory (who owns a session and whether it has ended), and answers the
background query used for cross-session memory.

Write paths raise :class:`~crossmem.errors.StorageError` on backend failure.
The background query never raises for backend trouble: it returns
:class:`~crossmem.memory.models.Degraded` instead, which callers treat as
"no background context available".
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from crossmem.errors import InvalidArgument, StorageError
from crossmem.memory.models import BackgroundResult, Degraded, Ok, Role

if TYPE_CHECKING:
    from datetime import datetime

    from crossmem.memory.models import Message, SessionRecord

logger = logging.getLogger(__name__)


def require_session_id(session_id: str | None) -> str:
    if not session_id:
        raise InvalidArgument("Session ID is required to access messages.")
    return session_id


def require_role(role: str | Role) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise InvalidArgument(f"Unknown message role: {role!r}") from None


def require_content(content: str) -> str:
    # SQLite length() and LIKE stop at the first NUL; the in-process ranker does not.
    if "\x00" in content:
        raise InvalidArgument("Message content must not contain NUL characters.")
    return content


class MessageStore(ABC):
    """Abstract base for the cloud and embedded message stores."""

    #: Short backend label used in log lines.
    backend_name: str = "store"

    # -- Messages --------------------------------------------------------------

    @abstractmethod
    async def add_message(
        self,
        uid: str | None,
        session_id: str,
        role: str | Role,
        content: str,
        model: str = "unknown",
        sent_at: datetime | None = None,
    ) -> str:
        """Append a message and return its ID.

        ``sent_at`` defaults to the write time; pass it only when replaying
        history from another source.
        """

    @abstractmethod
    async def get_messages_by_session(self, session_id: str) -> list[Message]:
        """Return every message of a session, oldest ``sent_at`` first."""

    @abstractmethod
    async def _fetch_recent(
        self, uid: str, limit: int, exclude_session_id: str | None
    ) -> list[Message]:
        """Backend query for :meth:`recent_for_user`. May raise."""

    # -- Session directory -------------------------------------------------------

    @abstractmethod
    async def start_session(self, uid: str, session_id: str | None = None) -> str:
        """Open a session for *uid* and return its ID."""

    @abstractmethod
    async def end_session(self, session_id: str, ended_at: datetime | None = None) -> bool:
        """Mark a session completed. Returns False if it was unknown or already ended."""

    @abstractmethod
    async def get_completed_sessions(self, uid: str) -> list[SessionRecord]:
        """Return the user's ended sessions, oldest first."""

    # -- Background retrieval ----------------------------------------------------

    async def recent_for_user(
        self, uid: str, limit: int = 50, exclude_session_id: str | None = None
    ) -> BackgroundResult:
        """Ranked messages from the user's completed sessions.

        Only sessions with ``ended_at`` set contribute, and never
        *exclude_session_id*.  Without a *uid* there is nothing to look up.
        Any failure, including a timeout, comes back as ``Degraded``.
        """
        if not uid or limit <= 0:
            return Ok([])

        try:
            messages = await self._fetch_recent(uid, limit, exclude_session_id)
        except (StorageError, TimeoutError) as exc:
            logger.warning(
                "[%s] Background retrieval degraded for user %s: %s",
                self.backend_name,
                uid,
                exc,
            )
            return Degraded(reason=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception(
                "[%s] Background retrieval failed for user %s", self.backend_name, uid
            )
            return Degraded(reason=str(exc) or type(exc).__name__)

        logger.info(
            "[%s] Found %d background messages for user %s",
            self.backend_name,
            len(messages),
            uid,
        )
        return Ok(messages)

    async def get_recent_messages_for_user(
        self, uid: str, limit: int = 50, exclude_session_id: str | None = None
    ) -> list[Message]:
        """List form of :meth:`recent_for_user`; empty on failure."""
        result = await self.recent_for_user(uid, limit, exclude_session_id)
        return result.messages
