"""Data models for stored messages, sessions, and background lookups."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single stored conversation message. Never mutated once written."""

    model_config = ConfigDict(frozen=True)

    id: str
    session_id: str
    uid: str | None = None
    role: Role
    content: str
    model: str = "unknown"
    sent_at: datetime
    created_at: datetime


class SessionRecord(BaseModel):
    """A conversation session as seen by the session directory."""

    id: str
    uid: str
    started_at: datetime
    ended_at: datetime | None = None

    @property
    def completed(self) -> bool:
        return self.ended_at is not None


@dataclass
class Ok:
    """Background lookup succeeded (possibly with zero messages)."""

    messages: list[Message] = field(default_factory=list)


@dataclass
class Degraded:
    """Background lookup failed; callers treat this exactly like ``Ok([])``."""

    reason: str
    messages: list[Message] = field(default_factory=list)


BackgroundResult = Ok | Degraded


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalise *value* to an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def make_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex
