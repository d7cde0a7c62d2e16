"""Durable local storage: the sync queues and the key-value area."""
import asyncio
import json
import logging
import time
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from vocasync import monitoring
from vocasync.errors import StorageError, ValidationError
from vocasync.models.base import SessionLocal
from vocasync.models.models import KeyValue, QueueEntryRow
from vocasync.models.sync_models import RECORD_TYPES, QueueEntry, RecordKind, SyncRecord

logger = logging.getLogger(__name__)

KindLike = Union[RecordKind, str]


def coerce_kind(kind: KindLike) -> RecordKind:
    """Accept a RecordKind or its string value."""
    if isinstance(kind, RecordKind):
        return kind
    try:
        return RecordKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown record kind: {kind!r}") from e


async def _run_storage(operation: str, func: Callable, *args: Any) -> Any:
    """Run a blocking storage call in a worker thread and translate failures."""
    try:
        return await asyncio.to_thread(func, *args)
    except StorageError:
        monitoring.storage_errors.labels(operation=operation).inc()
        raise
    except SQLAlchemyError as e:
        monitoring.storage_errors.labels(operation=operation).inc()
        logger.error("Storage failure during %s: %s", operation, e)
        raise StorageError(f"Local storage failed during {operation}: {e}") from e


class QueueStore:
    """Append-only queues of records waiting to be synced.

    Each record kind has its own queue. Entries are only ever appended or have
    their sync state updated; nothing is deleted. Mutations of one queue are
    serialised through an in-process lock because every storage call is a
    suspension point where another coroutine could interleave.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store with a session factory and a clock returning epoch seconds."""
        self.session_factory = session_factory or SessionLocal
        self.clock = clock
        self._locks: Dict[RecordKind, asyncio.Lock] = {}

    def _lock(self, kind: RecordKind) -> asyncio.Lock:
        lock = self._locks.get(kind)
        if lock is None:
            lock = self._locks[kind] = asyncio.Lock()
        return lock

    async def append(self, kind: KindLike, record: SyncRecord) -> QueueEntry:
        """Append a record as a new pending entry and return it."""
        kind = coerce_kind(kind)
        if not isinstance(record, RECORD_TYPES[kind]):
            raise ValidationError(
                f"{type(record).__name__} cannot be queued as {kind.value}"
            )

        async with self._lock(kind):
            entry = await _run_storage("append", self._append, kind, record)

        monitoring.records_queued.labels(queue=kind.queue_name).inc()
        logger.debug("Queued %s entry %s (captured_at=%s)", kind.value, entry.id, entry.captured_at)
        return entry

    async def mark_synced(self, kind: KindLike, captured_at: int) -> bool:
        """Flag the entry captured at ``captured_at`` as synced.

        When several entries share the key only the last written one is
        updated. Returns False if no entry has the key or it was already synced.
        """
        kind = coerce_kind(kind)
        async with self._lock(kind):
            return await _run_storage("mark_synced", self._mark_synced_by_key, kind, captured_at)

    async def mark_entry_synced(self, kind: KindLike, entry_id: int) -> bool:
        """Flag the entry with the given row id as synced."""
        kind = coerce_kind(kind)
        async with self._lock(kind):
            return await _run_storage("mark_synced", self._mark_synced_by_id, kind, entry_id)

    async def reject(self, kind: KindLike, entry_id: int, message: str) -> None:
        """Count a failed attempt and exclude the entry from later flushes.

        The entry stays pending so it remains visible in counts and listings.
        """
        kind = coerce_kind(kind)
        async with self._lock(kind):
            await _run_storage("reject", self._record_failure, kind, entry_id, message, True)

    async def record_failure(self, kind: KindLike, entry_id: int, message: str) -> None:
        """Count a failed submission attempt on an entry."""
        kind = coerce_kind(kind)
        async with self._lock(kind):
            await _run_storage("record_failure", self._record_failure, kind, entry_id, message)

    async def list_pending(self, kind: KindLike) -> List[QueueEntry]:
        """Get all entries not yet synced, oldest first."""
        kind = coerce_kind(kind)
        return await _run_storage("list_pending", self._list, kind, True)

    async def list_all(self, kind: KindLike) -> List[QueueEntry]:
        """Get every entry of a queue, oldest first."""
        kind = coerce_kind(kind)
        return await _run_storage("list_all", self._list, kind, False)

    async def pending_count(self, kind: KindLike) -> int:
        """Get the number of entries not yet synced."""
        kind = coerce_kind(kind)
        count = await _run_storage("pending_count", self._pending_count, kind)
        monitoring.pending_records.labels(queue=kind.queue_name).set(count)
        return count

    def _append(self, kind: RecordKind, record: SyncRecord) -> QueueEntry:
        with self.session_factory() as db:
            row = QueueEntryRow(
                queue=kind.queue_name,
                captured_at=int(self.clock() * 1000),
                payload=record.to_payload(),
                synced=False,
                attempts=0,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return self._to_entry(kind, row)

    def _mark_synced_by_key(self, kind: RecordKind, captured_at: int) -> bool:
        with self.session_factory() as db:
            row = (
                db.query(QueueEntryRow)
                .filter(
                    QueueEntryRow.queue == kind.queue_name,
                    QueueEntryRow.captured_at == captured_at,
                )
                .order_by(QueueEntryRow.id.desc())
                .first()
            )
            return self._flag_synced(db, row)

    def _mark_synced_by_id(self, kind: RecordKind, entry_id: int) -> bool:
        with self.session_factory() as db:
            row = (
                db.query(QueueEntryRow)
                .filter(
                    QueueEntryRow.queue == kind.queue_name,
                    QueueEntryRow.id == entry_id,
                )
                .first()
            )
            return self._flag_synced(db, row)

    @staticmethod
    def _flag_synced(db: Session, row: Optional[QueueEntryRow]) -> bool:
        if row is None or row.synced:
            return False
        row.synced = True
        row.synced_at = datetime.now(UTC)
        row.last_error = None
        db.commit()
        return True

    def _record_failure(self, kind: RecordKind, entry_id: int, message: str, rejected: bool = False) -> None:
        with self.session_factory() as db:
            row = (
                db.query(QueueEntryRow)
                .filter(
                    QueueEntryRow.queue == kind.queue_name,
                    QueueEntryRow.id == entry_id,
                )
                .first()
            )
            if row is None:
                return
            row.attempts = (row.attempts or 0) + 1
            row.last_error = message[:500]
            if rejected:
                row.rejected = True
            db.commit()

    def _list(self, kind: RecordKind, pending_only: bool) -> List[QueueEntry]:
        with self.session_factory() as db:
            query = db.query(QueueEntryRow).filter(QueueEntryRow.queue == kind.queue_name)
            if pending_only:
                query = query.filter(QueueEntryRow.synced == False)  # noqa: E712
            return [self._to_entry(kind, row) for row in query.order_by(QueueEntryRow.id).all()]

    def _pending_count(self, kind: RecordKind) -> int:
        with self.session_factory() as db:
            return (
                db.query(QueueEntryRow)
                .filter(
                    QueueEntryRow.queue == kind.queue_name,
                    QueueEntryRow.synced == False,  # noqa: E712
                )
                .count()
            )

    @staticmethod
    def _to_entry(kind: RecordKind, row: QueueEntryRow) -> QueueEntry:
        if not isinstance(row.payload, dict):
            raise StorageError(f"Corrupt entry {row.id} in {row.queue}")
        return QueueEntry(
            id=row.id,
            kind=kind,
            captured_at=row.captured_at,
            record=RECORD_TYPES[kind].from_payload(row.payload),
            synced=bool(row.synced),
            attempts=row.attempts or 0,
            last_error=row.last_error,
            rejected=bool(row.rejected),
        )


class KeyValueStore:
    """JSON values stored under string keys.

    A missing key reads as the supplied default.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal
        self._lock = asyncio.Lock()

    async def get(self, key: str, default: Any = None) -> Any:
        return await _run_storage("kv_get", self._get, key, default)

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Dict[str, Any]) -> None:
        """Write several keys in one transaction."""
        encoded = {key: json.dumps(value) for key, value in values.items()}
        async with self._lock:
            await _run_storage("kv_set", self._set_many, encoded)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return await _run_storage("kv_delete", self._delete, key)

    def _get(self, key: str, default: Any) -> Any:
        with self.session_factory() as db:
            row = db.query(KeyValue).filter(KeyValue.key == key).first()
            if row is None:
                return default
            try:
                return json.loads(row.value)
            except ValueError as e:
                raise StorageError(f"Corrupt value stored under {key!r}") from e

    def _set_many(self, encoded: Dict[str, str]) -> None:
        with self.session_factory() as db:
            for key, value in encoded.items():
                row = db.query(KeyValue).filter(KeyValue.key == key).first()
                if row is None:
                    db.add(KeyValue(key=key, value=value))
                else:
                    row.value = value
            db.commit()

    def _delete(self, key: str) -> bool:
        with self.session_factory() as db:
            deleted = db.query(KeyValue).filter(KeyValue.key == key).delete()
            db.commit()
            return deleted > 0
