"""Database models for the sync engine."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Index,
    Integer,
    String,
    Text,
)

from vocabsync.models.base import Base, TimestampMixin, UTCDateTime, utcnow
from vocabsync.models.data_models import (
    DifficultyLevel,
    LearningRecordData,
    SyncOperationData,
    SyncOperationKind,
    TextSourceData,
    WordTestData,
)


class TextSource(Base, TimestampMixin):
    """Text source model."""

    __tablename__ = "text_sources"

    id = Column(String(36), primary_key=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    upload_date = Column(UTCDateTime, default=utcnow, nullable=False)
    word_count = Column(Integer, default=0, nullable=False)
    processed_date = Column(UTCDateTime, nullable=True)

    def to_data(self) -> TextSourceData:
        return TextSourceData(
            id=self.id,
            title=self.title,
            content=self.content,
            upload_date=self.upload_date,
            word_count=self.word_count,
            processed_date=self.processed_date,
        )


class WordTest(Base, TimestampMixin):
    """Word test model, one word of a text source."""

    __tablename__ = "word_tests"

    id = Column(String(36), primary_key=True)
    word = Column(String, nullable=False)
    sentence = Column(Text, nullable=False)
    meaning = Column(Text, nullable=False)
    difficulty_level = Column(
        Enum(DifficultyLevel, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    source_id = Column(String(36), nullable=False, index=True)

    def to_data(self) -> WordTestData:
        return WordTestData(
            id=self.id,
            word=self.word,
            sentence=self.sentence,
            meaning=self.meaning,
            difficulty_level=self.difficulty_level,
            source_id=self.source_id,
        )


class LearningRecord(Base, TimestampMixin):
    """Per-word learning state, one row per word."""

    __tablename__ = "learning_records"

    word_id = Column(String(36), primary_key=True)
    is_memorized = Column(Boolean, nullable=False, default=False)
    review_count = Column(Integer, nullable=False, default=1)
    last_reviewed = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    synced = Column(Boolean, nullable=False, default=False, index=True)

    def to_data(self) -> LearningRecordData:
        return LearningRecordData(
            word_id=self.word_id,
            is_memorized=self.is_memorized,
            review_count=self.review_count,
            last_reviewed=self.last_reviewed,
            synced=self.synced,
        )


class SyncOperation(Base):
    """Queued mutation awaiting delivery to the remote API."""

    __tablename__ = "sync_operations"
    __table_args__ = (
        Index("ix_sync_operations_drain", "processed", "retry_count", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(
        Enum(SyncOperationKind, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    payload = Column(JSON, nullable=True)  # snapshot taken at enqueue time
    related_id = Column(String(36), nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(UTCDateTime, nullable=True)
    last_retry_at = Column(UTCDateTime, nullable=True)

    def to_data(self) -> SyncOperationData:
        return SyncOperationData(
            id=self.id,
            kind=self.kind,
            payload=self.payload,
            related_id=self.related_id,
            created_at=self.created_at,
            retry_count=self.retry_count,
            processed=self.processed,
            processed_at=self.processed_at,
            last_retry_at=self.last_retry_at,
        )
