"""Test configuration."""
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from dotenv import load_dotenv
from faker import Faker

# Set test environment before any imports
os.environ["ENV"] = "test"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from vocabsync.config import ensure_directories
from vocabsync.exceptions import RemoteApiError
from vocabsync.models.base import init_db, make_engine, make_session_factory
from vocabsync.models.data_models import (
    DifficultyLevel,
    LearningRecordData,
    TextSourceData,
    WordTestData,
)
from vocabsync.services.progress_aggregator import ProgressAggregator
from vocabsync.services.progress_store import ProgressStore
from vocabsync.services.source_service import TextSourceService
from vocabsync.services.storage_service import StorageService
from vocabsync.services.sync_queue import SyncQueue
from vocabsync.services.word_service import WordTestService

fake = Faker()


class FakeRemoteApi:
    """In-memory stand-in for the backend.

    Every call is appended to ``calls`` as ``(method, key)``. A call fails
    when its key is in ``failures`` or when ``online`` is False.
    """

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []
        self.failures: Dict[str, Exception] = {}
        self.online = True
        self.word_tests: Dict[str, List[WordTestData]] = {}
        self.synced: List[LearningRecordData] = []

    def _check(self, method: str, key: str) -> None:
        self.calls.append((method, key))
        if not self.online:
            raise RemoteApiError("Network error: offline")
        if key in self.failures:
            raise self.failures[key]

    async def upload_text_source(self, source: TextSourceData) -> TextSourceData:
        self._check("upload_text_source", source.id)
        return source

    async def fetch_word_tests(
        self, source_id: str, difficulty: Optional[DifficultyLevel] = None
    ) -> List[WordTestData]:
        self._check("fetch_word_tests", source_id)
        tests = self.word_tests.get(source_id, [])
        if difficulty is not None:
            tests = [test for test in tests if test.difficulty_level == difficulty]
        return tests

    async def sync_progress(self, records: Sequence[LearningRecordData]) -> Dict[str, Any]:
        for record in records:
            self._check("sync_progress", record.word_id)
        self.synced.extend(records)
        return {"syncedCount": len(records), "failedCount": 0}

    async def delete_text_source(self, source_id: str) -> None:
        self._check("delete_text_source", source_id)

    def keys(self, method: str) -> List[Any]:
        return [key for name, key in self.calls if name == method]


def make_source(**overrides) -> TextSourceData:
    """Build a valid text source."""
    values = {"title": fake.sentence(nb_words=3), "content": fake.paragraph(nb_sentences=5)}
    values.update(overrides)
    return TextSourceData(**values)


def make_word_test(source_id: str, difficulty: DifficultyLevel = DifficultyLevel.BEGINNER, **overrides) -> WordTestData:
    """Build a valid word test whose word appears in its sentence."""
    word = fake.unique.word()
    values = {
        "word": word,
        "sentence": f"The {word} was mentioned in the article.",
        "meaning": fake.sentence(nb_words=5),
        "difficulty_level": difficulty,
        "source_id": source_id,
    }
    values.update(overrides)
    return WordTestData(**values)


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    ensure_directories()
    yield
    fake.unique.clear()


@pytest.fixture
def engine():
    """Fresh in-memory database for each test."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def fake_api() -> FakeRemoteApi:
    return FakeRemoteApi()


@pytest.fixture
def progress_store(session_factory) -> ProgressStore:
    return ProgressStore(session_factory)


@pytest.fixture
def word_service(session_factory) -> WordTestService:
    return WordTestService(session_factory)


@pytest.fixture
def source_service(session_factory) -> TextSourceService:
    return TextSourceService(session_factory)


@pytest.fixture
def sync_queue(session_factory, fake_api, progress_store) -> SyncQueue:
    return SyncQueue(session_factory, fake_api, progress_store, max_retries=3)


@pytest.fixture
def storage_service(progress_store, word_service, source_service, sync_queue) -> StorageService:
    return StorageService(progress_store, word_service, source_service, sync_queue)


@pytest.fixture
def aggregator(progress_store, word_service) -> ProgressAggregator:
    return ProgressAggregator(progress_store, word_service)


@pytest.fixture
def source_factory():
    """Factory for valid text sources."""
    return make_source


@pytest.fixture
def word_test_factory():
    """Factory for valid word tests."""
    return make_word_test
