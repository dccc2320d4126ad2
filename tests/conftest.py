"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import copy
import itertools
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from google.api_core import exceptions as google_exceptions

from crossmem.memory.cloud import CloudMessageStore
from crossmem.memory.converter import FernetCipher, FieldConverter
from crossmem.memory.embedded import EmbeddedMessageStore

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def at(minutes: int) -> datetime:
    """A fixed timestamp *minutes* after T0."""
    return T0 + timedelta(minutes=minutes)


# -- In-memory Firestore double -------------------------------------------------


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict | None) -> None:
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self) -> dict | None:
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, db: FakeFirestore, path: str, doc_id: str) -> None:
        self._db = db
        self._path = path
        self.id = doc_id

    async def set(self, data: dict) -> None:
        self._db._check_write()
        self._db.docs.setdefault(self._path, {})[self.id] = copy.deepcopy(data)

    async def get(self) -> FakeSnapshot:
        self._db._check_read()
        return FakeSnapshot(self.id, self._db.docs.get(self._path, {}).get(self.id))

    async def update(self, data: dict) -> None:
        self._db._check_write()
        self._db.docs[self._path][self.id].update(copy.deepcopy(data))


class FakeQuery:
    def __init__(self, db: FakeFirestore, path: str, filters=(), order=()) -> None:
        self._db = db
        self._path = path
        self._filters = tuple(filters)
        self._order = tuple(order)

    def where(self, *, filter) -> FakeQuery:  # noqa: A002
        assert filter.op_string == "=="
        return FakeQuery(self._db, self._path, (*self._filters, filter), self._order)

    def order_by(self, field: str) -> FakeQuery:
        return FakeQuery(self._db, self._path, self._filters, (*self._order, field))

    async def stream(self):
        self._db._check_read()
        self._db.in_flight += 1
        self._db.max_in_flight = max(self._db.max_in_flight, self._db.in_flight)
        try:
            await asyncio.sleep(0.001)
            items = list(self._db.docs.get(self._path, {}).items())
            for f in self._filters:
                items = [(i, d) for i, d in items if d.get(f.field_path) == f.value]
            for field in reversed(self._order):
                items.sort(key=lambda item, field=field: item[1][field])
            for doc_id, data in items:
                yield FakeSnapshot(doc_id, data)
        finally:
            self._db.in_flight -= 1


class FakeCollection(FakeQuery):
    def __init__(self, db: FakeFirestore, path: str) -> None:
        super().__init__(db, path)

    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self._db, self._path, doc_id)

    async def add(self, data: dict) -> tuple[datetime, FakeDocument]:
        self._db._check_write()
        doc = FakeDocument(self._db, self._path, f"doc{next(self._db._ids):06d}")
        self._db.docs.setdefault(self._path, {})[doc.id] = copy.deepcopy(data)
        return datetime.now(UTC), doc


class FakeFirestore:
    """Just enough of ``firestore.AsyncClient`` for the cloud message store."""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, dict]] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._ids = itertools.count(1)

    def collection(self, *path: str) -> FakeCollection:
        return FakeCollection(self, "/".join(path))

    def _check_read(self) -> None:
        if self.fail_reads:
            raise google_exceptions.ServiceUnavailable("firestore unavailable")

    def _check_write(self) -> None:
        if self.fail_writes:
            raise google_exceptions.ServiceUnavailable("firestore unavailable")


# -- Fixtures -------------------------------------------------------------------


@pytest.fixture
def cipher() -> FernetCipher:
    return FernetCipher(FernetCipher.generate_key())


@pytest.fixture
def converter(cipher: FernetCipher) -> FieldConverter:
    return FieldConverter(cipher, ["content"])


@pytest.fixture
def firestore_client() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def cloud_store(firestore_client: FakeFirestore, converter: FieldConverter) -> CloudMessageStore:
    """Create a CloudMessageStore over the in-memory Firestore double."""
    return CloudMessageStore(firestore_client, converter, concurrency=4)


@pytest.fixture
def embedded_store(tmp_path: Path) -> EmbeddedMessageStore:
    """Create an EmbeddedMessageStore backed by a temp database."""
    return EmbeddedMessageStore(db_path=tmp_path / "test.db")


@pytest.fixture(params=["cloud", "embedded"])
def store(request: pytest.FixtureRequest):
    """Each message store backend in turn."""
    return request.getfixturevalue(f"{request.param}_store")
