"""Reversible field transform applied at the cloud storage boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from crossmem.errors import StorageError

if TYPE_CHECKING:
    from collections.abc import Iterable


@runtime_checkable
class Cipher(Protocol):
    """Opaque reversible text transform."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


class FernetCipher:
    """Cipher backed by ``cryptography``'s Fernet (AES-128-CBC + HMAC)."""

    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise StorageError("Stored field could not be decrypted") from exc


class FieldConverter:
    """Encrypts a fixed set of record fields on write and decrypts them on read.

    Other keys keep their values and their position in the record.  ``None``
    values are passed through untouched.
    """

    def __init__(self, cipher: Cipher, fields: Iterable[str] = ("content",)) -> None:
        self._cipher = cipher
        self._fields = frozenset(fields)

    @property
    def fields(self) -> frozenset[str]:
        return self._fields

    def to_storage(self, record: dict[str, Any]) -> dict[str, Any]:
        return {
            key: self._cipher.encrypt(value) if key in self._fields and value is not None else value
            for key, value in record.items()
        }

    def from_storage(self, record: dict[str, Any]) -> dict[str, Any]:
        return {
            key: self._cipher.decrypt(value) if key in self._fields and value is not None else value
            for key, value in record.items()
        }
