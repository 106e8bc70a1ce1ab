"""Service for managing word tests in the local store."""
import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func

from vocabsync.models.data_models import DifficultyLevel, WordTestData
from vocabsync.models.models import WordTest
from vocabsync.services.repository import Repository

logger = logging.getLogger(__name__)


class WordTestService(Repository):
    """Service for managing word tests in the local store."""

    def save_word_tests(self, tests: Iterable[WordTestData], validate: bool = True) -> List[WordTestData]:
        """Insert or update word tests by id."""
        tests = list(tests)
        if validate:
            for test in tests:
                test.validate()

        with self._transaction("save_word_tests") as db:
            for test in tests:
                word = db.get(WordTest, test.id)
                if word is None:
                    word = WordTest(id=test.id)
                    db.add(word)
                word.word = test.word
                word.sentence = test.sentence
                word.meaning = test.meaning
                word.difficulty_level = test.difficulty_level
                word.source_id = test.source_id

        logger.info(f"Saved {len(tests)} word tests")
        return tests

    def get_word_test(self, word_id: str) -> Optional[WordTestData]:
        """Get a word test by its ID."""
        with self._transaction("get_word_test") as db:
            word = db.get(WordTest, word_id)
            return word.to_data() if word else None

    def get_all(self) -> List[WordTestData]:
        """Get every stored word test."""
        with self._transaction("get_all") as db:
            return [word.to_data() for word in db.query(WordTest).order_by(WordTest.word).all()]

    def get_by_source(
        self,
        source_id: str,
        difficulty: Optional[DifficultyLevel] = None,
    ) -> List[WordTestData]:
        """Get the word tests of a source, optionally of one difficulty."""
        with self._transaction("get_by_source") as db:
            query = db.query(WordTest).filter(WordTest.source_id == source_id)
            if difficulty is not None:
                query = query.filter(WordTest.difficulty_level == difficulty)
            return [word.to_data() for word in query.order_by(WordTest.word).all()]

    def get_by_difficulty(self, difficulty: DifficultyLevel) -> List[WordTestData]:
        """Get the word tests of one difficulty across all sources."""
        with self._transaction("get_by_difficulty") as db:
            words = (
                db.query(WordTest)
                .filter(WordTest.difficulty_level == difficulty)
                .order_by(WordTest.word)
                .all()
            )
            return [word.to_data() for word in words]

    def get_word_ids_by_source(self, source_id: str) -> List[str]:
        """Get the ids of the word tests of a source."""
        with self._transaction("get_word_ids_by_source") as db:
            rows = db.query(WordTest.id).filter(WordTest.source_id == source_id).all()
            return [row.id for row in rows]

    def distinct_source_ids(self) -> Set[str]:
        """Get the ids of every source that has word tests."""
        with self._transaction("distinct_source_ids") as db:
            return {row.source_id for row in db.query(WordTest.source_id).distinct().all()}

    def count_by_difficulty(self) -> Dict[DifficultyLevel, int]:
        """Count word tests per difficulty; levels without words count 0."""
        with self._transaction("count_by_difficulty") as db:
            rows = (
                db.query(WordTest.difficulty_level, func.count(WordTest.id))
                .group_by(WordTest.difficulty_level)
                .all()
            )
        counts = {level: 0 for level in DifficultyLevel}
        counts.update({level: count for level, count in rows})
        return counts

    def get_word_count(self) -> int:
        """Get the count of word tests in the database."""
        with self._transaction("get_word_count") as db:
            return db.query(WordTest).count()

    def delete_by_source(self, source_id: str) -> int:
        """Delete the word tests of a source."""
        with self._transaction("delete_by_source") as db:
            deleted = (
                db.query(WordTest)
                .filter(WordTest.source_id == source_id)
                .delete(synchronize_session=False)
            )
        logger.info(f"Deleted {deleted} word tests of source {source_id}")
        return deleted

    def delete_all(self) -> int:
        """Delete every word test."""
        with self._transaction("delete_all") as db:
            return db.query(WordTest).delete(synchronize_session=False)
