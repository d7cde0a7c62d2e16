"""Tests for the local queue and key-value stores."""
import asyncio

import pytest
from faker import Faker
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vocasync.errors import StorageError, ValidationError
from vocasync.models.models import KeyValue, QueueEntryRow
from vocasync.models.sync_models import ProgressRecord, QuizResultRecord, RecordKind
from vocasync.services.storage_service import KeyValueStore, QueueStore

fake = Faker()


def progress(duration: int = 30) -> ProgressRecord:
    return ProgressRecord(user_id=fake.uuid4(), word_ids=[1, 2, 3], duration=duration)


@pytest.fixture
def broken_factory(tmp_path) -> sessionmaker:
    """Session factory whose database file can never be opened."""
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}")
    return sessionmaker(bind=engine)


@pytest.mark.asyncio
async def test_append_creates_pending_entry(store: QueueStore, clock) -> None:
    """Test appending a record."""
    record = progress()
    entry = await store.append(RecordKind.PROGRESS, record)

    assert entry.id is not None
    assert entry.synced is False
    assert entry.captured_at == int(clock.now * 1000)
    assert entry.record == record

    pending = await store.list_pending("progress")
    assert [e.id for e in pending] == [entry.id]


@pytest.mark.asyncio
async def test_queues_are_independent(store: QueueStore) -> None:
    """Test that progress and quiz results live in separate queues."""
    await store.append("progress", progress())
    await store.append("quiz_result", QuizResultRecord(user_id="u1", question_id=3, is_correct=1))

    assert len(await store.list_all(RecordKind.PROGRESS)) == 1
    assert len(await store.list_all(RecordKind.QUIZ_RESULT)) == 1
    assert (await store.list_all("quiz_result"))[0].record.question_id == 3


@pytest.mark.asyncio
async def test_append_rejects_wrong_record_type(store: QueueStore) -> None:
    with pytest.raises(ValidationError):
        await store.append(RecordKind.QUIZ_RESULT, progress())


@pytest.mark.asyncio
async def test_unknown_kind(store: QueueStore) -> None:
    with pytest.raises(ValidationError):
        await store.list_pending("settings")


@pytest.mark.asyncio
async def test_mark_synced_by_captured_at(store: QueueStore, clock) -> None:
    """Test flagging an entry synced by its capture time."""
    first = await store.append("progress", progress(10))
    clock.advance(1)
    second = await store.append("progress", progress(20))

    assert await store.mark_synced("progress", first.captured_at) is True

    pending = await store.list_pending("progress")
    assert [e.id for e in pending] == [second.id]

    everything = await store.list_all("progress")
    assert [e.synced for e in everything] == [True, False]


@pytest.mark.asyncio
async def test_mark_synced_missing_key_is_noop(store: QueueStore) -> None:
    await store.append("progress", progress())
    assert await store.mark_synced("progress", 42) is False
    assert len(await store.list_pending("progress")) == 1


@pytest.mark.asyncio
async def test_mark_synced_key_collision_updates_last_written(store: QueueStore) -> None:
    """Entries captured in the same millisecond: only the last written one is flagged."""
    first = await store.append("progress", progress(10))
    second = await store.append("progress", progress(20))
    assert first.captured_at == second.captured_at

    await store.mark_synced("progress", first.captured_at)

    entries = {e.id: e for e in await store.list_all("progress")}
    assert entries[first.id].synced is False
    assert entries[second.id].synced is True


@pytest.mark.asyncio
async def test_list_pending_keeps_original_order(store: QueueStore, clock) -> None:
    durations = [5, 3, 9, 1]
    for duration in durations:
        await store.append("progress", progress(duration))
        clock.advance(0.5)

    pending = await store.list_pending("progress")
    assert [e.record.duration for e in pending] == durations


@pytest.mark.asyncio
async def test_concurrent_appends_are_not_lost(store: QueueStore, clock) -> None:
    """Interleaved appends and flag updates must not clobber each other."""
    first = await store.append("progress", progress(1))

    await asyncio.gather(
        store.mark_entry_synced("progress", first.id),
        *(store.append("progress", progress(i + 2)) for i in range(20)),
    )

    entries = await store.list_all("progress")
    assert len(entries) == 21
    assert len({e.id for e in entries}) == 21
    assert entries[0].synced is True
    assert await store.pending_count("progress") == 20


@pytest.mark.asyncio
async def test_record_failure(store: QueueStore) -> None:
    entry = await store.append("progress", progress())

    await store.record_failure("progress", entry.id, "Could not connect")
    await store.record_failure("progress", entry.id, "timed out")

    stored = (await store.list_pending("progress"))[0]
    assert stored.attempts == 2
    assert stored.last_error == "timed out"


@pytest.mark.asyncio
async def test_reject_keeps_entry_pending(store: QueueStore) -> None:
    entry = await store.append("progress", progress())

    await store.reject("progress", entry.id, "word_ids must be a non-empty list")

    stored = (await store.list_pending("progress"))[0]
    assert stored.rejected is True
    assert stored.attempts == 1
    assert await store.pending_count("progress") == 1


@pytest.mark.asyncio
async def test_mark_synced_twice_reports_only_first(store: QueueStore) -> None:
    entry = await store.append("progress", progress())

    assert await store.mark_entry_synced("progress", entry.id) is True
    assert await store.mark_entry_synced("progress", entry.id) is False
    assert await store.mark_synced("progress", entry.captured_at) is False


@pytest.mark.asyncio
async def test_corrupt_entry_raises_storage_error(store: QueueStore, session_factory) -> None:
    with session_factory() as db:
        db.add(QueueEntryRow(queue="unsync_progress", captured_at=1, payload="garbage"))
        db.commit()

    with pytest.raises(StorageError):
        await store.list_pending("progress")


@pytest.mark.asyncio
async def test_unreadable_storage_raises_storage_error(broken_factory) -> None:
    store = QueueStore(broken_factory)

    with pytest.raises(StorageError):
        await store.append("progress", progress())
    with pytest.raises(StorageError):
        await store.list_pending("progress")


@pytest.mark.asyncio
async def test_key_value_roundtrip(kv: KeyValueStore) -> None:
    """Test storing, overwriting and deleting values."""
    assert await kv.get("words") is None
    assert await kv.get("words", []) == []

    await kv.set("words", [{"id": 1}])
    await kv.set_many({"words": [{"id": 2}], "words_cache_time": "1000"})

    assert await kv.get("words") == [{"id": 2}]
    assert await kv.get("words_cache_time") == "1000"

    assert await kv.delete("words") is True
    assert await kv.delete("words") is False
    assert await kv.get("words") is None


@pytest.mark.asyncio
async def test_corrupt_key_value(kv: KeyValueStore, session_factory) -> None:
    with session_factory() as db:
        db.add(KeyValue(key="settings", value="{not json"))
        db.commit()

    with pytest.raises(StorageError):
        await kv.get("settings")
