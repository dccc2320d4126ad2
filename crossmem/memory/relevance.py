"""Relevance filter and ranker for background messages.

A background candidate is kept only if it carries some information: it must
be longer than ``MAX_TRIVIAL_LENGTH`` characters and must not contain any of
the ``NON_HELPFUL_PHRASES`` (case-insensitive).  Survivors are ordered longest
first, oldest first among equal lengths.  Freshness is deliberately ignored;
the active session already supplies recent context.

The same rule drives both backends.  The cloud store calls
:func:`filter_and_rank` on decoded messages; the embedded store pushes
:func:`sql_filter` and :data:`SQL_ORDER_BY` into its query.  Both forms are
generated from the constants below so they cannot drift apart.
"""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from crossmem.memory.models import Message

MAX_TRIVIAL_LENGTH = 10

NON_HELPFUL_PHRASES: tuple[str, ...] = (
    "i don't know",
    "i don't have",
    "i'm not sure",
    "i'm sorry",
    "i'm unable",
    "i cannot",
    "i can't",
    "unfortunately",
    "i'm afraid",
)

# SQLite's lower() only folds ASCII, so the Python side does the same.
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def fold_case(text: str) -> str:
    return text.translate(_ASCII_LOWER)


def is_informative(message: Message) -> bool:
    """Return True if *message* is worth resurfacing as background context."""
    content = message.content
    if not content or len(content) <= MAX_TRIVIAL_LENGTH:
        return False
    lowered = fold_case(content)
    return not any(phrase in lowered for phrase in NON_HELPFUL_PHRASES)


def rank_key(message: Message) -> tuple[int, datetime, str]:
    """Sort key: longer content first, then older ``sent_at``, then ``id``."""
    return (-len(message.content), message.sent_at, message.id)


def filter_and_rank(messages: Iterable[Message], limit: int | None = None) -> list[Message]:
    """Drop non-informative messages and order the rest by relevance."""
    ranked = sorted((m for m in messages if is_informative(m)), key=rank_key)
    if limit is not None:
        return ranked[: max(limit, 0)]
    return ranked


# -- SQL translation -----------------------------------------------------------

SQL_ORDER_BY = "length(m.content) DESC, m.sent_at ASC, m.id ASC"


def sql_filter(column: str = "m.content") -> tuple[str, tuple]:
    """Return the WHERE fragment and parameters equivalent to :func:`is_informative`.

    Phrases are bound as ``LIKE`` parameters, so apostrophes need no escaping.
    None of the phrases contain ``%`` or ``_``.
    """
    clauses = [f"length({column}) > ?"]
    params: list[object] = [MAX_TRIVIAL_LENGTH]
    for phrase in NON_HELPFUL_PHRASES:
        clauses.append(f"lower({column}) NOT LIKE ?")
        params.append(f"%{phrase}%")
    return " AND ".join(clauses), tuple(params)
