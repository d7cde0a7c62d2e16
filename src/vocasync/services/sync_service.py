"""Service coordinating local queues with the remote API."""
import asyncio
import logging
from typing import Any, Dict, Mapping, Sequence

from vocasync import monitoring
from vocasync.errors import ApiError, StorageError, ValidationError
from vocasync.models.sync_models import (
    RECORD_TYPES,
    BatchError,
    BatchReport,
    QueueEntry,
    RecordKind,
    SyncOutcome,
    SyncRecord,
)
from vocasync.services.api_client import ApiClient, validate_progress, validate_quiz_result
from vocasync.services.storage_service import KindLike, QueueStore, coerce_kind

logger = logging.getLogger(__name__)

SAVED_OFFLINE_MESSAGE = "Saved offline. It will be sent later."
NOT_SAVED_MESSAGE = "Could not save locally or send to the server."


class SyncService:
    """Append-then-send coordinator for progress and quiz result records.

    A record is always written to its local queue before any network attempt
    and is only flagged synced after the server acknowledged it. Failures to
    reach the server never propagate to the caller; the entry simply stays
    pending for the next flush.
    """

    def __init__(self, store: QueueStore, api: ApiClient):
        """Initialize the service with a queue store and an API client."""
        self.store = store
        self.api = api
        self._flush_locks: Dict[RecordKind, asyncio.Lock] = {}

    async def record_and_sync(self, kind: KindLike, record: SyncRecord) -> SyncOutcome:
        """Queue a record durably, then try to send it right away.

        Invalid records raise ValidationError and are never queued.
        """
        kind = coerce_kind(kind)
        record = self._coerce_record(kind, record)
        self._validate(kind, record)

        try:
            entry = await self.store.append(kind, record)
        except StorageError as e:
            logger.error(f"No durable queue for {kind.value}, sending directly: {e}")
            return await self._send_unqueued(kind, record)

        try:
            data = await self._submit(kind, record)
        except ApiError as e:
            self._count_failure(kind, e)
            logger.warning(
                "Could not send %s (captured_at=%s), saved locally: %s",
                kind.value, entry.captured_at, e,
            )
            await self._note_failure(entry, e)
            return SyncOutcome(
                synced=False,
                saved_locally=True,
                message=SAVED_OFFLINE_MESSAGE,
                entry=entry,
                error=str(e),
            )

        try:
            await self.store.mark_entry_synced(kind, entry.id)
        except StorageError as e:
            # Sent but still pending locally; the next flush resends it
            logger.error(f"Sent {kind.value} entry {entry.id} but could not mark it synced: {e}")
        else:
            entry.synced = True
        monitoring.records_synced.labels(queue=kind.queue_name).inc()
        return SyncOutcome(
            synced=True,
            saved_locally=True,
            message=f"{kind.value} sent",
            entry=entry,
            data=data,
        )

    async def flush_pending(self, kind: KindLike) -> int:
        """Try to send every pending entry of a queue, oldest first.

        Each entry is committed on its own, so an abandoned pass keeps the
        progress it made. Passes over the same queue run one at a time.
        Entries that fail validation are rejected and not retried. Returns
        the number of entries newly synced.
        """
        kind = coerce_kind(kind)
        async with self._flush_lock(kind):
            return await self._flush(kind)

    async def _flush(self, kind: RecordKind) -> int:
        try:
            pending = await self.store.list_pending(kind)
        except StorageError as e:
            logger.error(f"Could not read pending {kind.value} entries: {e}")
            return 0

        pending = [entry for entry in pending if not entry.rejected]
        if not pending:
            return 0

        logger.info("Flushing %d pending %s entries", len(pending), kind.value)
        synced_count = 0
        for entry in pending:
            try:
                self._validate(kind, entry.record)
                await self._submit(kind, entry.record)
            except ValidationError as e:
                self._count_failure(kind, e)
                logger.error(
                    "Rejected invalid %s entry (captured_at=%s): %s",
                    kind.value, entry.captured_at, e,
                )
                await self._note_failure(entry, e, reject=True)
                continue
            except ApiError as e:
                self._count_failure(kind, e)
                logger.warning(
                    "Sync failed for %s entry (captured_at=%s): %s",
                    kind.value, entry.captured_at, e,
                )
                await self._note_failure(entry, e)
                continue

            try:
                if await self.store.mark_entry_synced(kind, entry.id):
                    synced_count += 1
                    monitoring.records_synced.labels(queue=kind.queue_name).inc()
            except StorageError as e:
                logger.error(f"Could not mark {kind.value} entry {entry.id} synced: {e}")

        logger.info("Synced %d of %d pending %s entries", synced_count, len(pending), kind.value)
        await self._refresh_pending_gauge(kind)
        return synced_count

    async def flush_all(self) -> Dict[str, int]:
        """Flush every queue. Returns newly synced counts by kind."""
        return {kind.value: await self.flush_pending(kind) for kind in RecordKind}

    async def submit_quiz_results_batch(self, records: Sequence[Any]) -> BatchReport:
        """Record and send several quiz results, continuing past failures.

        Records that cannot be sent stay queued for a later flush; invalid ones
        are reported and not queued.
        """
        if not records:
            raise ValidationError("No quiz results to send")

        report = BatchReport()
        for index, record in enumerate(records):
            try:
                outcome = await self.record_and_sync(RecordKind.QUIZ_RESULT, record)
            except ValidationError as e:
                report.failed += 1
                report.errors.append(BatchError(index=index, record=record, message=str(e)))
                continue

            if outcome.synced:
                report.successful += 1
            else:
                report.failed += 1
                report.errors.append(
                    BatchError(index=index, record=record, message=outcome.error or outcome.message)
                )
        logger.info(f"Quiz result batch: {report.message}")
        return report

    async def pending_counts(self) -> Dict[str, int]:
        """Get the number of pending entries by kind."""
        return {kind.value: await self.store.pending_count(kind) for kind in RecordKind}

    async def _submit(self, kind: RecordKind, record: SyncRecord) -> Any:
        if kind is RecordKind.PROGRESS:
            return await self.api.submit_progress(record)
        return await self.api.submit_quiz_result(record)

    async def _send_unqueued(self, kind: RecordKind, record: SyncRecord) -> SyncOutcome:
        try:
            data = await self._submit(kind, record)
        except ApiError as e:
            self._count_failure(kind, e)
            logger.error(f"{kind.value} was neither saved nor sent: {e}")
            return SyncOutcome(synced=False, saved_locally=False, message=NOT_SAVED_MESSAGE, error=str(e))
        monitoring.records_synced.labels(queue=kind.queue_name).inc()
        return SyncOutcome(synced=True, saved_locally=False, message=f"{kind.value} sent", data=data)

    def _flush_lock(self, kind: RecordKind) -> asyncio.Lock:
        lock = self._flush_locks.get(kind)
        if lock is None:
            lock = self._flush_locks[kind] = asyncio.Lock()
        return lock

    async def _note_failure(self, entry: QueueEntry, error: Exception, reject: bool = False) -> None:
        try:
            if reject:
                await self.store.reject(entry.kind, entry.id, str(error))
            else:
                await self.store.record_failure(entry.kind, entry.id, str(error))
        except StorageError as e:
            logger.error(f"Could not record failed attempt on entry {entry.id}: {e}")

    async def _refresh_pending_gauge(self, kind: RecordKind) -> None:
        try:
            await self.store.pending_count(kind)
        except StorageError as e:
            logger.debug(f"Pending gauge for {kind.value} not updated: {e}")

    @staticmethod
    def _coerce_record(kind: RecordKind, record: Any) -> SyncRecord:
        record_type = RECORD_TYPES[kind]
        if isinstance(record, record_type):
            return record
        if isinstance(record, Mapping):
            return record_type.from_payload(record)
        raise ValidationError(f"{type(record).__name__} cannot be recorded as {kind.value}")

    @staticmethod
    def _validate(kind: RecordKind, record: SyncRecord) -> None:
        if kind is RecordKind.PROGRESS:
            validate_progress(record.to_payload())
        else:
            validate_quiz_result(record.to_payload())

    @staticmethod
    def _count_failure(kind: RecordKind, error: Exception) -> None:
        monitoring.submission_failures.labels(
            queue=kind.queue_name, error_type=type(error).__name__
        ).inc()
