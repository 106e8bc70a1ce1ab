"""Service for managing text sources in the local store."""
import logging
from datetime import datetime
from typing import List, Optional

from vocabsync.models.base import utcnow
from vocabsync.models.data_models import TextSourceData
from vocabsync.models.models import TextSource
from vocabsync.services.repository import Repository

logger = logging.getLogger(__name__)


class TextSourceService(Repository):
    """Service for managing text sources in the local store."""

    def create(self, source: TextSourceData) -> TextSourceData:
        """Validate and store a new text source."""
        source.validate()
        with self._transaction("create") as db:
            row = TextSource(
                id=source.id,
                title=source.title,
                content=source.content,
                upload_date=source.upload_date,
                word_count=source.word_count,
                processed_date=source.processed_date,
            )
            db.add(row)
            db.flush()
            data = row.to_data()
        logger.info(f"Created text source: {source.title}")
        return data

    def get(self, source_id: str) -> Optional[TextSourceData]:
        """Get a text source by its ID."""
        with self._transaction("get") as db:
            row = db.get(TextSource, source_id)
            return row.to_data() if row else None

    def get_all(self, processed: Optional[bool] = None) -> List[TextSourceData]:
        """Get text sources, newest upload first."""
        with self._transaction("get_all") as db:
            query = db.query(TextSource)
            if processed is True:
                query = query.filter(TextSource.processed_date.isnot(None))
            elif processed is False:
                query = query.filter(TextSource.processed_date.is_(None))
            return [row.to_data() for row in query.order_by(TextSource.upload_date.desc()).all()]

    def mark_processed(
        self,
        source_id: str,
        word_count: int,
        processed_date: Optional[datetime] = None,
    ) -> Optional[TextSourceData]:
        """Record that the backend finished extracting words from a source."""
        with self._transaction("mark_processed") as db:
            row = db.get(TextSource, source_id)
            if row is None:
                return None
            row.word_count = word_count
            row.processed_date = processed_date or utcnow()
            db.flush()
            return row.to_data()

    def delete(self, source_id: str) -> bool:
        """Delete a text source."""
        with self._transaction("delete") as db:
            deleted = (
                db.query(TextSource)
                .filter(TextSource.id == source_id)
                .delete(synchronize_session=False)
            )
        return bool(deleted)

    def count(self) -> int:
        """Get the count of text sources."""
        with self._transaction("count") as db:
            return db.query(TextSource).count()

    def delete_all(self) -> int:
        """Delete every text source."""
        with self._transaction("delete_all") as db:
            return db.query(TextSource).delete(synchronize_session=False)
