"""Serializable snapshots of stored entities.

Stores hand these out instead of live ORM rows, and the sync queue keeps
their dict form as the replay payload. Keys use the camelCase names of the
remote API; timestamps are ISO-8601 strings.
"""
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional

from vocabsync.exceptions import ValidationError

MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 100_000


class DifficultyLevel(Enum):
    """Difficulty assigned to a word test by the backend."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class SyncOperationKind(Enum):
    """Kinds of mutations replayed against the remote API."""
    PROGRESS_SYNC = "progress_sync"
    SOURCE_UPLOAD = "text_source_sync"
    SOURCE_DELETION = "text_source_deletion"


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class TextSourceData:
    """A text uploaded by the user for vocabulary extraction."""
    title: str
    content: str
    id: str = field(default_factory=new_id)
    upload_date: datetime = field(default_factory=_now)
    word_count: int = 0
    processed_date: Optional[datetime] = None

    @property
    def is_processed(self) -> bool:
        return self.processed_date is not None

    def validate(self) -> None:
        """Raise ValidationError if the source cannot be uploaded."""
        if not self.title.strip():
            raise ValidationError("empty_title", "Text source title cannot be empty")
        if not self.content.strip():
            raise ValidationError("empty_content", "Text source content cannot be empty")
        if len(self.content) < MIN_CONTENT_LENGTH:
            raise ValidationError(
                "content_too_short",
                f"Text content must be at least {MIN_CONTENT_LENGTH} characters long",
            )
        if len(self.content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                "content_too_long",
                f"Text content cannot exceed {MAX_CONTENT_LENGTH:,} characters",
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "uploadDate": format_timestamp(self.upload_date),
            "wordCount": self.word_count,
            "processedDate": format_timestamp(self.processed_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextSourceData":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            content=data.get("content", ""),
            upload_date=parse_timestamp(data.get("uploadDate")) or _now(),
            word_count=int(data.get("wordCount") or 0),
            processed_date=parse_timestamp(data.get("processedDate")),
        )


@dataclass(frozen=True)
class WordTestData:
    """A word with its contextual sentence and meaning."""
    word: str
    sentence: str
    meaning: str
    difficulty_level: DifficultyLevel
    source_id: str
    id: str = field(default_factory=new_id)

    def validate(self) -> None:
        """Raise ValidationError if the word test is malformed."""
        if not self.word.strip():
            raise ValidationError("empty_word", "Word cannot be empty")
        if not self.sentence.strip():
            raise ValidationError("empty_sentence", "Sentence cannot be empty")
        if not self.meaning.strip():
            raise ValidationError("empty_meaning", "Word meaning cannot be empty")
        if self.word.strip().lower() not in self.sentence.lower():
            raise ValidationError("word_not_in_sentence", "Word must appear in the provided sentence")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "word": self.word,
            "sentence": self.sentence,
            "meaning": self.meaning,
            "difficultyLevel": self.difficulty_level.value,
            "sourceId": self.source_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordTestData":
        return cls(
            id=str(data["id"]),
            word=data["word"],
            sentence=data["sentence"],
            meaning=data["meaning"],
            difficulty_level=DifficultyLevel(data["difficultyLevel"]),
            source_id=str(data["sourceId"]),
        )


@dataclass(frozen=True)
class LearningRecordData:
    """Memorization state of one word at a point in time."""
    word_id: str
    is_memorized: bool
    review_count: int = 1
    last_reviewed: datetime = field(default_factory=_now)
    synced: bool = False

    def validate(self, now: Optional[datetime] = None) -> None:
        """Raise ValidationError if the record breaks its invariants."""
        if self.review_count < 1:
            raise ValidationError("invalid_review_count", "Review count must be greater than 0")
        now = now or _now()
        if self.last_reviewed > now:
            raise ValidationError("future_review_date", "Review date cannot be in the future")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordId": self.word_id,
            "isMemorized": self.is_memorized,
            "reviewCount": self.review_count,
            "lastReviewed": format_timestamp(self.last_reviewed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningRecordData":
        return cls(
            word_id=str(data["wordId"]),
            is_memorized=bool(data["isMemorized"]),
            review_count=int(data.get("reviewCount", 1)),
            last_reviewed=parse_timestamp(data.get("lastReviewed")) or _now(),
            synced=bool(data.get("isSynced", False)),
        )


@dataclass(frozen=True)
class SyncOperationData:
    """A queued mutation as it was read from the store."""
    id: int
    kind: SyncOperationKind
    payload: Optional[Dict[str, Any]]
    related_id: Optional[str]
    created_at: datetime
    retry_count: int = 0
    processed: bool = False
    processed_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None

    def is_exhausted(self, max_retries: int) -> bool:
        return not self.processed and self.retry_count >= max_retries
