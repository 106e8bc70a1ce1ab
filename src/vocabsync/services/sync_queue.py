"""Durable queue of mutations awaiting delivery to the remote API."""
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from vocabsync.config import settings
from vocabsync.exceptions import ExhaustedRetries, SyncFailure
from vocabsync.models.base import utcnow
from vocabsync.models.data_models import (
    LearningRecordData,
    SyncOperationData,
    SyncOperationKind,
    TextSourceData,
)
from vocabsync.models.models import SyncOperation
from vocabsync.models.progress_models import DrainResult
from vocabsync.monitoring import (
    drain_duration,
    sync_exhausted_operations,
    sync_operations_enqueued,
    sync_operations_failed,
    sync_operations_processed,
    sync_pending_operations,
)
from vocabsync.services.api_client import RemoteApi
from vocabsync.services.progress_store import ProgressStore
from vocabsync.services.repository import Repository

logger = logging.getLogger(__name__)


class SyncQueue(Repository):
    """Append-only log of pending mutations with retry bookkeeping.

    Every local mutation is appended here, online or not, and :meth:`drain`
    replays the log oldest first. An operation is either processed (terminal),
    pending with ``retry_count < max_retries``, or exhausted. Exhausted
    operations are skipped by drains but kept until discarded or requeued.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        api: RemoteApi,
        progress_store: Optional[ProgressStore] = None,
        max_retries: Optional[int] = None,
    ):
        """Initialize the queue with its store, the remote API and the progress store to update."""
        super().__init__(session_factory)
        self.api = api
        self.progress_store = progress_store
        self.max_retries = settings.sync.max_retries if max_retries is None else max_retries
        self._draining = False

    # Enqueueing

    def enqueue_progress_sync(self, record: LearningRecordData) -> SyncOperationData:
        """Queue delivery of a learning record as it is right now."""
        operation = self._enqueue(SyncOperationKind.PROGRESS_SYNC, record.to_dict(), record.word_id)
        logger.info(f"Queued progress sync for word: {record.word_id}")
        return operation

    def enqueue_source_upload(self, source: TextSourceData) -> SyncOperationData:
        """Queue upload of a text source."""
        operation = self._enqueue(SyncOperationKind.SOURCE_UPLOAD, source.to_dict(), source.id)
        logger.info(f"Queued text source sync: {source.title}")
        return operation

    def enqueue_source_deletion(self, source_id: str) -> SyncOperationData:
        """Queue deletion of a text source on the server."""
        operation = self._enqueue(SyncOperationKind.SOURCE_DELETION, None, source_id)
        logger.info(f"Queued text source deletion: {source_id}")
        return operation

    def _enqueue(
        self,
        kind: SyncOperationKind,
        payload: Optional[Dict[str, Any]],
        related_id: Optional[str],
    ) -> SyncOperationData:
        with self._transaction("enqueue") as db:
            operation = SyncOperation(
                kind=kind,
                payload=payload,
                related_id=related_id,
                created_at=utcnow(),
                retry_count=0,
                processed=False,
            )
            db.add(operation)
            db.flush()
            data = operation.to_data()
        sync_operations_enqueued.labels(kind=kind.value).inc()
        sync_pending_operations.inc()
        return data

    # Draining

    async def drain(self) -> DrainResult:
        """Deliver every eligible operation, oldest first.

        A failed operation gets its retry count bumped and the drain moves on.
        A drain started while another is running returns immediately.
        """
        if self._draining:
            logger.info("Drain already in progress, skipping")
            return DrainResult(skipped=True)

        self._draining = True
        succeeded = failed = exhausted = 0
        try:
            with drain_duration.time():
                operations = self._fetch_pending()
                logger.info(f"Found {len(operations)} pending operations")
                for operation in operations:
                    if await self._process(operation):
                        succeeded += 1
                    else:
                        failed += 1
                        if operation.retry_count + 1 >= self.max_retries:
                            exhausted += 1
            self._update_gauges()
        finally:
            self._draining = False

        result = DrainResult(
            attempted=succeeded + failed,
            succeeded=succeeded,
            failed=failed,
            exhausted=exhausted,
        )
        if result.attempted:
            logger.info(f"Drain finished: {result}")
        return result

    @property
    def is_draining(self) -> bool:
        return self._draining

    def _fetch_pending(self) -> List[SyncOperationData]:
        with self._transaction("fetch_pending") as db:
            operations = (
                db.query(SyncOperation)
                .filter(
                    SyncOperation.processed == False,  # noqa: E712
                    SyncOperation.retry_count < self.max_retries,
                )
                .order_by(SyncOperation.created_at.asc(), SyncOperation.id.asc())
                .all()
            )
            return [operation.to_data() for operation in operations]

    async def _process(self, operation: SyncOperationData) -> bool:
        logger.info(f"Processing operation: {operation.kind.value} for {operation.related_id or 'unknown'}")
        try:
            await self._dispatch(operation)
        except Exception as e:
            # Any failure, network or server side, counts toward the retry ceiling
            failure = e if isinstance(e, SyncFailure) else SyncFailure(operation.id, operation.kind.value, str(e))
            logger.warning(str(failure))
            sync_operations_failed.labels(kind=operation.kind.value).inc()
            retry_count = self._record_failure(operation.id)
            if retry_count >= self.max_retries:
                logger.warning(str(ExhaustedRetries(operation.id, retry_count)))
            return False

        self._mark_processed(operation.id)
        sync_operations_processed.labels(kind=operation.kind.value).inc()
        if operation.kind == SyncOperationKind.PROGRESS_SYNC and self.progress_store is not None:
            record = LearningRecordData.from_dict(operation.payload)
            self.progress_store.mark_synced_if_current(record.word_id, record.review_count)
        return True

    async def _dispatch(self, operation: SyncOperationData) -> None:
        if operation.kind == SyncOperationKind.PROGRESS_SYNC:
            record = self._decode(operation, LearningRecordData)
            await self.api.sync_progress([record])
        elif operation.kind == SyncOperationKind.SOURCE_UPLOAD:
            source = self._decode(operation, TextSourceData)
            uploaded = await self.api.upload_text_source(source)
            logger.info(f"Uploaded text source {uploaded.title} ({uploaded.id})")
        elif operation.kind == SyncOperationKind.SOURCE_DELETION:
            if not operation.related_id:
                raise SyncFailure(operation.id, operation.kind.value, "invalid operation data")
            await self.api.delete_text_source(operation.related_id)
        else:
            raise SyncFailure(operation.id, str(operation.kind), "unknown operation kind")

    @staticmethod
    def _decode(operation: SyncOperationData, model):
        try:
            return model.from_dict(operation.payload)
        except (KeyError, TypeError, ValueError) as e:
            raise SyncFailure(operation.id, operation.kind.value, "invalid operation data") from e

    def _mark_processed(self, operation_id: int) -> None:
        with self._transaction("mark_processed") as db:
            operation = db.get(SyncOperation, operation_id)
            if operation is not None:
                operation.processed = True
                operation.processed_at = utcnow()
        logger.info(f"Marked operation as processed: {operation_id}")

    def _record_failure(self, operation_id: int) -> int:
        with self._transaction("record_failure") as db:
            operation = db.get(SyncOperation, operation_id)
            if operation is None:
                return 0
            operation.retry_count += 1
            operation.last_retry_at = utcnow()
            retry_count = operation.retry_count
        logger.info(f"Incremented retry count for operation: {operation_id}, count: {retry_count}")
        return retry_count

    def _update_gauges(self) -> None:
        sync_pending_operations.set(self.pending_count())
        sync_exhausted_operations.set(self.exhausted_count())

    # Inspection

    def pending_count(self) -> int:
        """Number of operations a drain would still attempt."""
        with self._transaction("pending_count") as db:
            return (
                db.query(SyncOperation)
                .filter(
                    SyncOperation.processed == False,  # noqa: E712
                    SyncOperation.retry_count < self.max_retries,
                )
                .count()
            )

    def exhausted_count(self) -> int:
        """Number of operations abandoned after reaching the retry ceiling."""
        with self._transaction("exhausted_count") as db:
            return (
                db.query(SyncOperation)
                .filter(
                    SyncOperation.processed == False,  # noqa: E712
                    SyncOperation.retry_count >= self.max_retries,
                )
                .count()
            )

    def list_all(self) -> List[SyncOperationData]:
        """Every operation in the queue, oldest first."""
        with self._transaction("list_all") as db:
            operations = (
                db.query(SyncOperation)
                .order_by(SyncOperation.created_at.asc(), SyncOperation.id.asc())
                .all()
            )
            return [operation.to_data() for operation in operations]

    def list_exhausted(self) -> List[SyncOperationData]:
        """Operations that need manual intervention."""
        return [op for op in self.list_all() if op.is_exhausted(self.max_retries)]

    def has_pending(self, kind: SyncOperationKind, related_id: str, include_exhausted: bool = False) -> bool:
        """Whether an unprocessed operation of this kind exists for the entity."""
        with self._transaction("has_pending") as db:
            query = db.query(SyncOperation.id).filter(
                SyncOperation.kind == kind,
                SyncOperation.related_id == related_id,
                SyncOperation.processed == False,  # noqa: E712
            )
            if not include_exhausted:
                query = query.filter(SyncOperation.retry_count < self.max_retries)
            return query.first() is not None

    # Maintenance

    def requeue_exhausted(self, operation_ids: Optional[Iterable[int]] = None) -> int:
        """Give exhausted operations a fresh set of attempts."""
        with self._transaction("requeue_exhausted") as db:
            query = db.query(SyncOperation).filter(
                SyncOperation.processed == False,  # noqa: E712
                SyncOperation.retry_count >= self.max_retries,
            )
            if operation_ids is not None:
                query = query.filter(SyncOperation.id.in_(list(operation_ids)))
            requeued = query.update({SyncOperation.retry_count: 0}, synchronize_session=False)
        logger.info(f"Requeued {requeued} exhausted operations")
        self._update_gauges()
        return requeued

    def discard(self, operation_id: int) -> bool:
        """Delete one unprocessed operation."""
        with self._transaction("discard") as db:
            deleted = (
                db.query(SyncOperation)
                .filter(SyncOperation.id == operation_id, SyncOperation.processed == False)  # noqa: E712
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info(f"Discarded operation {operation_id}")
            self._update_gauges()
        return bool(deleted)

    def cleanup(self, older_than_days: Optional[int] = None) -> int:
        """Delete processed operations older than the retention window."""
        days = settings.sync.retention_days if older_than_days is None else older_than_days
        cutoff = utcnow() - timedelta(days=days)
        with self._transaction("cleanup") as db:
            deleted = (
                db.query(SyncOperation)
                .filter(
                    SyncOperation.processed == True,  # noqa: E712
                    SyncOperation.processed_at < cutoff,
                )
                .delete(synchronize_session=False)
            )
        logger.info(f"Cleaned up {deleted} old processed operations")
        return deleted

    def clear(self) -> int:
        """Delete every operation."""
        with self._transaction("clear") as db:
            deleted = db.query(SyncOperation).delete(synchronize_session=False)
        logger.info(f"Cleared {deleted} operations from sync queue")
        self._update_gauges()
        return deleted
