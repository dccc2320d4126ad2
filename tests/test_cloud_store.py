"""Tests for CloudMessageStore: Firestore specifics."""

import pytest
from conftest import FakeFirestore, at

from crossmem.errors import InvalidArgument, StorageError
from crossmem.memory.cloud import CloudMessageStore
from crossmem.memory.converter import FernetCipher, FieldConverter
from crossmem.memory.models import Degraded, Ok


async def test_content_encrypted_at_rest(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    msg_id = await cloud_store.add_message("alice", "s1", "assistant", "The secret is 42 exactly")

    raw = firestore_client.docs["sessions/s1/ai_messages"][msg_id]
    assert raw["content"] != "The secret is 42 exactly"
    assert raw["uid"] == "alice"
    assert raw["session_id"] == "s1"
    assert raw["role"] == "assistant"
    assert raw["model"] == "unknown"
    assert raw["sent_at"] == raw["created_at"]


async def test_read_decrypts_and_keeps_uid(cloud_store: CloudMessageStore) -> None:
    await cloud_store.add_message("alice", "s1", "user", "What is the answer?", model="gpt-4o")

    [message] = await cloud_store.get_messages_by_session("s1")
    assert message.content == "What is the answer?"
    assert message.uid == "alice"
    assert message.model == "gpt-4o"


async def test_session_documents(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    await cloud_store.start_session("alice", "s1")
    assert firestore_client.docs["sessions"]["s1"]["ended_at"] is None

    assert await cloud_store.end_session("s1", ended_at=at(30)) is True
    assert firestore_client.docs["sessions"]["s1"]["ended_at"] == at(30)


async def test_end_unknown_session(cloud_store: CloudMessageStore) -> None:
    assert await cloud_store.end_session("missing") is False


async def test_empty_session_id_rejected_before_io(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    with pytest.raises(InvalidArgument):
        await cloud_store.add_message("alice", "", "user", "hello")
    assert firestore_client.docs == {}


# -- failures --------------------------------------------------------------------


async def test_read_failure_degrades(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    firestore_client.fail_reads = True

    result = await cloud_store.recent_for_user("alice", 10, None)
    assert isinstance(result, Degraded)
    assert "firestore unavailable" in result.reason


async def test_write_failure_raises(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    firestore_client.fail_writes = True

    with pytest.raises(StorageError, match="Failed to add message"):
        await cloud_store.add_message("alice", "s1", "user", "hello")


async def test_session_read_failure_raises(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    firestore_client.fail_reads = True

    with pytest.raises(StorageError):
        await cloud_store.get_messages_by_session("s1")


async def test_undecryptable_content_degrades(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    await cloud_store.start_session("alice", "s1")
    await cloud_store.add_message("alice", "s1", "assistant", "A long enough answer here")
    await cloud_store.end_session("s1")

    other_key = FieldConverter(FernetCipher(FernetCipher.generate_key()))
    rekeyed = CloudMessageStore(firestore_client, other_key)

    result = await rekeyed.recent_for_user("alice", 10, None)
    assert isinstance(result, Degraded)


async def test_malformed_document_degrades(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore
) -> None:
    await cloud_store.start_session("alice", "s1")
    await cloud_store.end_session("s1")
    firestore_client.docs["sessions/s1/ai_messages"] = {"bad": {"sent_at": at(0)}}

    result = await cloud_store.recent_for_user("alice", 10, None)
    assert isinstance(result, Degraded)


@pytest.mark.parametrize(("field", "value"), [("sent_at", 1700000000), ("content", 42)])
async def test_mistyped_field_degrades(
    cloud_store: CloudMessageStore, firestore_client: FakeFirestore, field, value
) -> None:
    await cloud_store.start_session("alice", "s1")
    msg_id = await cloud_store.add_message("alice", "s1", "assistant", "A long enough answer here")
    await cloud_store.end_session("s1")
    firestore_client.docs["sessions/s1/ai_messages"][msg_id][field] = value

    result = await cloud_store.recent_for_user("alice", 10, None)
    assert isinstance(result, Degraded)
    assert await cloud_store.get_recent_messages_for_user("alice", 10, None) == []


# -- concurrency -----------------------------------------------------------------


async def test_per_session_fetches_are_bounded(
    firestore_client: FakeFirestore, converter: FieldConverter
) -> None:
    store = CloudMessageStore(firestore_client, converter, concurrency=2)
    for i in range(6):
        sid = f"s{i}"
        await store.start_session("alice", sid)
        await store.add_message(
            "alice", sid, "assistant", f"Answer number {i} with detail", sent_at=at(i)
        )
        await store.end_session(sid)

    result = await store.recent_for_user("alice", 50, None)
    assert isinstance(result, Ok)
    assert len(result.messages) == 6
    assert firestore_client.max_in_flight == 2


async def test_failed_session_read_cancels_the_rest(
    firestore_client: FakeFirestore, converter: FieldConverter
) -> None:
    store = CloudMessageStore(firestore_client, converter, concurrency=1)
    for i in range(4):
        sid = f"s{i}"
        await store.start_session("alice", sid)
        await store.add_message("alice", sid, "assistant", f"Answer number {i} with detail")
        await store.end_session(sid)
    firestore_client.docs["sessions/s0/ai_messages"] = {"bad": {"sent_at": at(0)}}

    result = await store.recent_for_user("alice", 50, None)
    assert isinstance(result, Degraded)
    # no per-session read is left running once the result is back
    assert firestore_client.in_flight == 0
