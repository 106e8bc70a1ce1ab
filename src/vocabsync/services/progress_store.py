"""Durable store for per-word learning records."""
import logging
import threading
from typing import Dict, Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import sessionmaker

from vocabsync.models.base import utcnow
from vocabsync.models.data_models import LearningRecordData
from vocabsync.models.models import LearningRecord
from vocabsync.models.progress_models import ProgressStatistics
from vocabsync.monitoring import responses_recorded
from vocabsync.services.repository import Repository

logger = logging.getLogger(__name__)


class ProgressStore(Repository):
    """CRUD and aggregate queries over learning records.

    Writes are serialized by a per-store lock so concurrent responses for the
    same word never lose a review count increment.
    """

    def __init__(self, session_factory: sessionmaker):
        """Initialize the store with a session factory."""
        super().__init__(session_factory)
        self._lock = threading.RLock()

    def record_response(self, word_id: str, is_memorized: bool) -> LearningRecordData:
        """Create or update the record of a word with a new study outcome."""
        with self._lock, self._transaction("record_response") as db:
            record = db.get(LearningRecord, word_id)
            now = utcnow()
            if record is None:
                record = LearningRecord(
                    word_id=word_id,
                    is_memorized=is_memorized,
                    review_count=1,
                    last_reviewed=now,
                    synced=False,
                )
                db.add(record)
            else:
                record.is_memorized = is_memorized
                record.review_count += 1
                record.last_reviewed = now
                record.synced = False
            db.flush()
            data = record.to_data()

        responses_recorded.labels(outcome="memorized" if is_memorized else "not_memorized").inc()
        logger.info(
            f"Recorded progress for word {word_id}: memorized={is_memorized}, count={data.review_count}"
        )
        return data

    def get_by_word(self, word_id: str) -> Optional[LearningRecordData]:
        """Get the record of a word, if it was ever studied."""
        with self._transaction("get_by_word") as db:
            record = db.get(LearningRecord, word_id)
            return record.to_data() if record else None

    def get_by_words(self, word_ids: Iterable[str]) -> Dict[str, LearningRecordData]:
        """Get the records of several words keyed by word id; unknown ids are left out."""
        word_ids = list(set(word_ids))
        if not word_ids:
            return {}
        with self._transaction("get_by_words") as db:
            records = (
                db.query(LearningRecord)
                .filter(LearningRecord.word_id.in_(word_ids))
                .all()
            )
            return {record.word_id: record.to_data() for record in records}

    def get_all(self, memorized: Optional[bool] = None) -> List[LearningRecordData]:
        """Get records, most recently reviewed first, optionally filtered by outcome."""
        with self._transaction("get_all") as db:
            query = db.query(LearningRecord)
            if memorized is not None:
                query = query.filter(LearningRecord.is_memorized == memorized)
            records = query.order_by(LearningRecord.last_reviewed.desc()).all()
            return [record.to_data() for record in records]

    def get_unsynced(self) -> List[LearningRecordData]:
        """Get records whose current state has not reached the server."""
        with self._transaction("get_unsynced") as db:
            records = (
                db.query(LearningRecord)
                .filter(LearningRecord.synced == False)  # noqa: E712
                .order_by(LearningRecord.last_reviewed.desc())
                .all()
            )
            return [record.to_data() for record in records]

    def mark_synced(self, word_ids: Iterable[str]) -> int:
        """Flag records as synced. Unknown word ids are ignored."""
        word_ids = list(set(word_ids))
        if not word_ids:
            return 0
        with self._lock, self._transaction("mark_synced") as db:
            updated = (
                db.query(LearningRecord)
                .filter(LearningRecord.word_id.in_(word_ids))
                .update({LearningRecord.synced: True}, synchronize_session=False)
            )
        logger.info(f"Marked {updated} progress records as synced")
        return updated

    def mark_synced_if_current(self, word_id: str, review_count: int) -> bool:
        """Flag a record as synced only if no response was recorded after the snapshot."""
        with self._lock, self._transaction("mark_synced_if_current") as db:
            updated = (
                db.query(LearningRecord)
                .filter(
                    LearningRecord.word_id == word_id,
                    LearningRecord.review_count == review_count,
                )
                .update({LearningRecord.synced: True}, synchronize_session=False)
            )
        if not updated:
            logger.debug(f"Record for word {word_id} changed since review {review_count}, left unsynced")
        return bool(updated)

    def get_statistics(self) -> ProgressStatistics:
        """Counts over all records, read in a single query."""
        with self._lock, self._transaction("get_statistics") as db:
            total, memorized, reviews = db.query(
                func.count(LearningRecord.word_id),
                func.coalesce(func.sum(case((LearningRecord.is_memorized == True, 1), else_=0)), 0),  # noqa: E712
                func.coalesce(func.sum(LearningRecord.review_count), 0),
            ).one()

        return ProgressStatistics(
            total_words=int(total),
            memorized_words=int(memorized),
            not_memorized_words=int(total) - int(memorized),
            total_reviews=int(reviews),
        )

    def delete_by_words(self, word_ids: Iterable[str]) -> int:
        """Delete the records of the given words."""
        word_ids = list(set(word_ids))
        if not word_ids:
            return 0
        with self._lock, self._transaction("delete_by_words") as db:
            deleted = (
                db.query(LearningRecord)
                .filter(LearningRecord.word_id.in_(word_ids))
                .delete(synchronize_session=False)
            )
        logger.info(f"Deleted {deleted} progress records for specified words")
        return deleted

    def delete_all(self) -> int:
        """Delete every record."""
        with self._lock, self._transaction("delete_all") as db:
            deleted = db.query(LearningRecord).delete(synchronize_session=False)
        logger.info(f"Deleted {deleted} user progress records")
        return deleted
