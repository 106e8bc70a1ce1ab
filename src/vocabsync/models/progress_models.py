"""Statistics returned by the progress store and aggregator."""
from dataclasses import dataclass
from typing import Optional

from vocabsync.models.data_models import DifficultyLevel


def percentage(part: int, whole: int) -> float:
    """part / whole * 100, or 0 when there is nothing to divide by."""
    if whole <= 0:
        return 0.0
    return part / whole * 100.0


@dataclass(frozen=True)
class ProgressStatistics:
    """Counts over every learning record."""
    total_words: int
    memorized_words: int
    not_memorized_words: int
    total_reviews: int

    @property
    def memorized_percentage(self) -> float:
        return percentage(self.memorized_words, self.total_words)

    @property
    def average_reviews_per_word(self) -> float:
        if self.total_words <= 0:
            return 0.0
        return self.total_reviews / self.total_words


@dataclass(frozen=True)
class _WordGroupProgress:
    total_words: int
    memorized_words: int
    not_memorized_words: int
    total_reviews: int

    @property
    def studied_words(self) -> int:
        return self.memorized_words + self.not_memorized_words

    @property
    def completion_rate(self) -> float:
        return percentage(self.studied_words, self.total_words)

    @property
    def memorization_rate(self) -> float:
        return percentage(self.memorized_words, self.studied_words)

    @property
    def average_reviews_per_word(self) -> float:
        if self.studied_words <= 0:
            return 0.0
        return self.total_reviews / self.studied_words


@dataclass(frozen=True)
class SourceProgress(_WordGroupProgress):
    """Progress over the words of one text source."""
    source_id: Optional[str] = None


@dataclass(frozen=True)
class DifficultyProgress(_WordGroupProgress):
    """Progress over the words of one difficulty level."""
    difficulty: Optional[DifficultyLevel] = None


@dataclass(frozen=True)
class OverallProgress:
    """Progress across every studied word."""
    total_words_studied: int
    total_words_memorized: int
    total_sources: int

    @property
    def memorization_rate(self) -> float:
        return percentage(self.total_words_memorized, self.total_words_studied)


@dataclass(frozen=True)
class SessionProgress:
    """Position and counters of a study session."""
    current_word_index: int
    total_words: int
    memorized_count: int
    not_memorized_count: int

    @property
    def completion_percentage(self) -> float:
        return percentage(self.current_word_index, self.total_words)


@dataclass(frozen=True)
class StorageStatistics:
    """Local storage counts for monitoring and debugging."""
    total_word_tests: int
    total_text_sources: int
    total_progress_records: int
    memorized_words: int
    unsynced_progress_count: int
    pending_sync_operations: int
    exhausted_sync_operations: int


@dataclass(frozen=True)
class DrainResult:
    """Outcome of one pass over the sync queue."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    skipped: bool = False
