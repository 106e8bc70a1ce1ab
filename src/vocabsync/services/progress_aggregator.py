"""Read-only statistics over learning records and word metadata."""
from typing import Dict, Iterable, Tuple

from vocabsync.models.data_models import DifficultyLevel
from vocabsync.models.progress_models import (
    DifficultyProgress,
    OverallProgress,
    SessionProgress,
    SourceProgress,
)
from vocabsync.models.session_models import SessionSnapshot
from vocabsync.services.progress_store import ProgressStore
from vocabsync.services.word_service import WordTestService


class ProgressAggregator:
    """Derives progress statistics on demand. Never writes."""

    def __init__(self, progress_store: ProgressStore, word_service: WordTestService):
        """Initialize the aggregator with the progress store and word metadata."""
        self.progress_store = progress_store
        self.word_service = word_service

    def _count(self, word_ids: Iterable[str]) -> Tuple[int, int, int, int]:
        """Join word ids against learning records; words never studied are not counted."""
        word_ids = list(word_ids)
        records = self.progress_store.get_by_words(word_ids)
        memorized = sum(1 for record in records.values() if record.is_memorized)
        reviews = sum(record.review_count for record in records.values())
        return len(word_ids), memorized, len(records) - memorized, reviews

    def source_progress(self, source_id: str) -> SourceProgress:
        """Progress over the words of one text source."""
        word_ids = self.word_service.get_word_ids_by_source(source_id)
        total, memorized, not_memorized, reviews = self._count(word_ids)
        return SourceProgress(
            source_id=source_id,
            total_words=total,
            memorized_words=memorized,
            not_memorized_words=not_memorized,
            total_reviews=reviews,
        )

    def difficulty_progress(self, level: DifficultyLevel) -> DifficultyProgress:
        """Progress over the words of one difficulty level."""
        word_ids = [test.id for test in self.word_service.get_by_difficulty(level)]
        total, memorized, not_memorized, reviews = self._count(word_ids)
        return DifficultyProgress(
            difficulty=level,
            total_words=total,
            memorized_words=memorized,
            not_memorized_words=not_memorized,
            total_reviews=reviews,
        )

    def progress_by_difficulty(self) -> Dict[DifficultyLevel, DifficultyProgress]:
        return {level: self.difficulty_progress(level) for level in DifficultyLevel}

    def overall_progress(self) -> OverallProgress:
        """Progress across every studied word and source."""
        statistics = self.progress_store.get_statistics()
        return OverallProgress(
            total_words_studied=statistics.total_words,
            total_words_memorized=statistics.memorized_words,
            total_sources=len(self.word_service.distinct_source_ids()),
        )

    @staticmethod
    def session_progress(snapshot: SessionSnapshot) -> SessionProgress:
        return SessionProgress(
            current_word_index=snapshot.current_index,
            total_words=snapshot.total_words,
            memorized_count=snapshot.memorized_count,
            not_memorized_count=snapshot.not_memorized_count,
        )
