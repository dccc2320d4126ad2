"""Identity lookup: who the current request is acting for."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class User(BaseModel):
    """The authenticated user behind a request."""

    uid: str


@runtime_checkable
class IdentityProvider(Protocol):
    """Protocol satisfied by whatever owns authentication."""

    def get_current_user(self) -> User | None:
        """Return the signed-in user, or None when nobody is signed in."""
        ...


class StaticIdentity:
    """Identity provider that always answers with the same user (or nobody)."""

    def __init__(self, uid: str | None = None) -> None:
        self._user = User(uid=uid) if uid else None

    def get_current_user(self) -> User | None:
        return self._user
