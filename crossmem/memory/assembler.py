"""Cross-session context assembly.

Builds the message list for a new model request: ranked background messages
from the user's completed sessions first, then the tail of the live session,
under a fixed total budget.  Memory is best-effort; any failure falls back to
the live session's messages.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from crossmem.config import settings
from crossmem.memory.models import Degraded, Ok

if TYPE_CHECKING:
    from collections.abc import Sequence

    from crossmem.config import MemoryConfig
    from crossmem.identity import IdentityProvider, User
    from crossmem.memory.models import BackgroundResult, Message
    from crossmem.memory.store import MessageStore

logger = logging.getLogger(__name__)


def split_budget(config: MemoryConfig) -> tuple[int, int]:
    """Return ``(max_background, max_current)`` for *config*.

    Unused background slots are not handed to the current session.
    """
    max_background = math.floor(config.max_total_messages * config.background_ratio)
    return max_background, config.max_total_messages - max_background


def to_api_messages(messages: Sequence[Message]) -> list[dict[str, str]]:
    """Format messages for a chat-completion API."""
    return [{"role": m.role.value, "content": m.content} for m in messages]


class MemoryAssembler:
    """Interleaves background and current-session messages under a budget."""

    def __init__(
        self,
        store: MessageStore,
        config: MemoryConfig | None = None,
        identity: IdentityProvider | None = None,
    ) -> None:
        self._store = store
        self._config = config or settings.memory_config()
        self._identity = identity

    @property
    def config(self) -> MemoryConfig:
        return self._config

    async def _background(self, session_id: str, user: User | None) -> BackgroundResult:
        if user is None or not user.uid:
            logger.info("No current user, skipping background messages")
            return Ok([])
        return await self._store.recent_for_user(
            user.uid, self._config.max_background_messages, session_id
        )

    async def build_conversation_with_memory(
        self,
        current_session_messages: Sequence[Message],
        session_id: str,
        user: User | None,
    ) -> list[Message]:
        """Return background + current messages. Never raises."""
        try:
            result = await self._background(session_id, user)
            if isinstance(result, Degraded):
                logger.warning("Cross-session memory degraded: %s", result.reason)
            background = result.messages

            max_background, max_current = split_budget(self._config)
            limited_background = list(background[:max_background])
            limited_current = list(current_session_messages[-max_current:]) if max_current else []

            combined = limited_background + limited_current
            logger.info(
                "Built conversation: %d background + %d current = %d total",
                len(limited_background),
                len(limited_current),
                len(combined),
            )
            return combined
        except Exception:
            logger.exception("Building conversation with memory failed (non-fatal)")
            return list(current_session_messages)

    async def build_for_current_user(
        self, current_session_messages: Sequence[Message], session_id: str
    ) -> list[Message]:
        """Resolve the user from the identity provider, then assemble."""
        try:
            user = self._identity.get_current_user() if self._identity else None
        except Exception:
            logger.exception("Identity lookup failed, continuing without memory")
            user = None
        return await self.build_conversation_with_memory(
            current_session_messages, session_id, user
        )
