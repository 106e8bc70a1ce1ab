"""Single write path tying local stores to the sync queue."""
import logging
from typing import List, Optional

from vocabsync.models.data_models import (
    DifficultyLevel,
    LearningRecordData,
    SyncOperationKind,
    TextSourceData,
    WordTestData,
)
from vocabsync.models.progress_models import DrainResult, StorageStatistics
from vocabsync.services.api_client import RemoteApi
from vocabsync.services.progress_store import ProgressStore
from vocabsync.services.source_service import TextSourceService
from vocabsync.services.sync_queue import SyncQueue
from vocabsync.services.word_service import WordTestService

logger = logging.getLogger(__name__)


class StorageService:
    """Service for local persistence with queued replication.

    Every local mutation is written to its store and then appended to the
    sync queue in a separate transaction. If the append fails after the
    write succeeded, the record stays unsynced and :meth:`requeue_unsynced`
    queues it again before the next drain.
    """

    def __init__(
        self,
        progress_store: ProgressStore,
        word_service: WordTestService,
        source_service: TextSourceService,
        sync_queue: SyncQueue,
        api: Optional[RemoteApi] = None,
    ):
        """Initialize the service with its stores, the sync queue and the remote API."""
        self.progress_store = progress_store
        self.word_service = word_service
        self.source_service = source_service
        self.sync_queue = sync_queue
        self.api = api if api is not None else sync_queue.api

    # Progress

    def save_progress(self, word_id: str, is_memorized: bool) -> LearningRecordData:
        """Persist a study outcome and queue it for the server."""
        record = self.progress_store.record_response(word_id, is_memorized)
        self.sync_queue.enqueue_progress_sync(record)
        return record

    # The session engine records responses through this name
    record_response = save_progress

    def fetch_progress(self, word_id: str) -> Optional[LearningRecordData]:
        return self.progress_store.get_by_word(word_id)

    def requeue_unsynced(self) -> int:
        """Queue every unsynced record that has no unprocessed queue entry.

        Records whose entry reached the retry ceiling are left for
        requeue_exhausted.
        """
        queued = 0
        for record in self.progress_store.get_unsynced():
            if self.sync_queue.has_pending(
                SyncOperationKind.PROGRESS_SYNC, record.word_id, include_exhausted=True
            ):
                continue
            self.sync_queue.enqueue_progress_sync(record)
            queued += 1
        if queued:
            logger.info(f"Requeued {queued} unsynced progress records")
        return queued

    # Text sources

    def save_text_source(self, source: TextSourceData) -> TextSourceData:
        """Store a new text source and queue its upload."""
        saved = self.source_service.create(source)
        self.sync_queue.enqueue_source_upload(saved)
        return saved

    def fetch_text_sources(self) -> List[TextSourceData]:
        return self.source_service.get_all()

    def delete_text_source(self, source_id: str) -> int:
        """Delete a source with its word tests and learning records, and queue the deletion.

        Returns the number of learning records removed.
        """
        logger.info(f"Deleting text source: {source_id}")
        word_ids = self.word_service.get_word_ids_by_source(source_id)
        deleted_records = self.progress_store.delete_by_words(word_ids)
        self.word_service.delete_by_source(source_id)
        self.source_service.delete(source_id)
        self.sync_queue.enqueue_source_deletion(source_id)
        logger.info(f"Deleted text source {source_id} with {len(word_ids)} words")
        return deleted_records

    # Word tests

    def save_word_tests(self, tests: List[WordTestData]) -> List[WordTestData]:
        return self.word_service.save_word_tests(tests)

    async def fetch_word_tests(
        self, source_id: str, difficulty: Optional[DifficultyLevel] = None
    ) -> List[WordTestData]:
        """Word tests of a source from the local store."""
        tests = self.word_service.get_by_source(source_id, difficulty)
        logger.info(
            f"Retrieved {len(tests)} word tests for source {source_id}, "
            f"difficulty: {difficulty.value if difficulty else 'all'}"
        )
        return tests

    async def refresh_word_tests(
        self, source_id: str, difficulty: Optional[DifficultyLevel] = None
    ) -> List[WordTestData]:
        """Download the word tests of a source and store them locally.

        Network errors propagate to the caller.
        """
        tests = await self.api.fetch_word_tests(source_id, difficulty)
        self.word_service.save_word_tests(tests, validate=False)
        logger.info(f"Refreshed {len(tests)} word tests for source {source_id}")
        return tests

    # Sync

    async def sync(self, online: bool) -> DrainResult:
        """Drain the sync queue when connectivity is available."""
        if not online:
            logger.debug("Offline, sync postponed")
            return DrainResult(skipped=True)
        self.requeue_unsynced()
        return await self.sync_queue.drain()

    def storage_statistics(self) -> StorageStatistics:
        """Counts across the local stores and the sync queue."""
        progress = self.progress_store.get_statistics()
        statistics = StorageStatistics(
            total_word_tests=self.word_service.get_word_count(),
            total_text_sources=self.source_service.count(),
            total_progress_records=progress.total_words,
            memorized_words=progress.memorized_words,
            unsynced_progress_count=len(self.progress_store.get_unsynced()),
            pending_sync_operations=self.sync_queue.pending_count(),
            exhausted_sync_operations=self.sync_queue.exhausted_count(),
        )
        logger.info(f"Storage statistics calculated: {statistics}")
        return statistics

    def clear_all_data(self) -> None:
        """Delete all local data, queue included."""
        logger.warning("Clearing all local data")
        self.progress_store.delete_all()
        self.word_service.delete_all()
        self.source_service.delete_all()
        self.sync_queue.clear()
        logger.info("Successfully cleared all local data")
