"""Tests for the study session engine."""
import asyncio
import random
import threading
from typing import List, Tuple

import pytest

from vocabsync.exceptions import InvalidTransition, StorageFailure
from vocabsync.models.data_models import LearningRecordData
from vocabsync.models.session_models import DisplayPhase, SessionStatus
from vocabsync.services.progress_aggregator import ProgressAggregator
from vocabsync.services.session_engine import NO_WORDS_AVAILABLE, SessionEngine


class RecordingRecorder:
    """Recorder that keeps every response in memory."""

    def __init__(self):
        self.responses: List[Tuple[str, bool]] = []
        self.fail_with = None

    def record_response(self, word_id: str, is_memorized: bool) -> LearningRecordData:
        if self.fail_with is not None:
            raise self.fail_with
        self.responses.append((word_id, is_memorized))
        return LearningRecordData(word_id=word_id, is_memorized=is_memorized)


class BlockingRecorder(RecordingRecorder):
    """Recorder that waits for a signal before persisting."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def record_response(self, word_id: str, is_memorized: bool) -> LearningRecordData:
        self.release.wait(timeout=5)
        return super().record_response(word_id, is_memorized)


@pytest.fixture
def recorder() -> RecordingRecorder:
    return RecordingRecorder()


@pytest.fixture
def engine(recorder) -> SessionEngine:
    return SessionEngine(recorder, shuffle=False)


async def answer(engine: SessionEngine, memorized: bool) -> None:
    engine.reveal()
    await engine.respond(memorized)


@pytest.mark.asyncio
async def test_full_session(engine: SessionEngine, recorder: RecordingRecorder):
    """Test a session over three words ending in COMPLETED."""
    engine.start(["a", "b", "c"])
    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.current_word == "a"

    await answer(engine, True)
    await answer(engine, False)
    await answer(engine, True)

    assert engine.status == SessionStatus.COMPLETED
    assert engine.memorized_count == 2
    assert engine.not_memorized_count == 1
    assert engine.progress_percentage() == 100.0
    assert engine.remaining_count() == 0
    assert engine.session_summary() == "2/3 words memorized (66%)"
    assert recorder.responses == [("a", True), ("b", False), ("c", True)]


@pytest.mark.asyncio
async def test_respond_before_reveal_is_rejected(engine: SessionEngine, recorder: RecordingRecorder):
    """Test that a response without revealing the meaning changes nothing."""
    engine.start(["a", "b"])

    with pytest.raises(InvalidTransition):
        await engine.respond(True)

    assert engine.phase == DisplayPhase.WORD_SHOWN
    assert engine.current_index == 0
    assert engine.memorized_count == 0
    assert recorder.responses == []


def test_reveal_is_idempotent(engine: SessionEngine):
    """Test that revealing twice keeps the meaning shown."""
    engine.start(["a"])
    engine.reveal()
    engine.reveal()

    assert engine.phase == DisplayPhase.MEANING_SHOWN


def test_commands_before_start_are_rejected(engine: SessionEngine):
    """Test that per-word commands need a running session."""
    with pytest.raises(InvalidTransition):
        engine.reveal()
    with pytest.raises(InvalidTransition):
        engine.skip()
    with pytest.raises(InvalidTransition):
        engine.go_to_previous()


def test_empty_word_list_fails(engine: SessionEngine):
    """Test that starting without words moves to ERROR."""
    engine.start([])

    assert engine.status == SessionStatus.ERROR
    assert engine.error == NO_WORDS_AVAILABLE


@pytest.mark.asyncio
async def test_completed_session_rejects_responses(engine: SessionEngine):
    """Test that nothing more can be answered after the last word."""
    engine.start(["a"])
    await answer(engine, True)

    with pytest.raises(InvalidTransition):
        engine.reveal()
    with pytest.raises(InvalidTransition):
        await engine.respond(True)


def test_skip_advances_without_recording(engine: SessionEngine, recorder: RecordingRecorder):
    """Test that skipping moves on without touching the counters."""
    engine.start(["a", "b"])
    engine.skip()

    assert engine.current_word == "b"
    assert engine.memorized_count == 0
    assert engine.not_memorized_count == 0
    assert recorder.responses == []

    engine.skip()
    assert engine.status == SessionStatus.COMPLETED
    assert engine.session_summary() == "No words completed"


@pytest.mark.asyncio
async def test_go_to_previous_restores_counters(engine: SessionEngine):
    """Test that stepping back undoes exactly the last forward step."""
    engine.start(["a", "b", "c"])
    await answer(engine, True)
    engine.skip()
    await answer(engine, False)
    assert engine.status == SessionStatus.COMPLETED

    assert engine.go_to_previous() is True
    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.current_word == "c"
    assert engine.phase == DisplayPhase.WORD_SHOWN
    assert (engine.memorized_count, engine.not_memorized_count) == (1, 0)

    assert engine.go_to_previous() is True
    assert engine.current_word == "b"
    assert (engine.memorized_count, engine.not_memorized_count) == (1, 0)

    assert engine.go_to_previous() is True
    assert engine.current_word == "a"
    assert (engine.memorized_count, engine.not_memorized_count) == (0, 0)

    assert engine.go_to_previous() is False
    assert engine.current_index == 0


@pytest.mark.asyncio
async def test_answer_again_after_going_back(engine: SessionEngine, recorder: RecordingRecorder):
    """Test that a word can be answered again after stepping back."""
    engine.start(["a", "b"])
    await answer(engine, False)
    engine.go_to_previous()
    await answer(engine, True)

    assert (engine.memorized_count, engine.not_memorized_count) == (1, 0)
    assert recorder.responses == [("a", False), ("a", True)]


@pytest.mark.asyncio
async def test_commands_rejected_while_persisting():
    """Test that every command is rejected while a response is being stored."""
    recorder = BlockingRecorder()
    engine = SessionEngine(recorder, shuffle=False)
    engine.start(["a", "b"])
    engine.reveal()

    pending = asyncio.create_task(engine.respond(True))
    await asyncio.sleep(0)

    assert engine.busy is True
    assert engine.phase == DisplayPhase.AWAITING_ADVANCE
    with pytest.raises(InvalidTransition):
        engine.reveal()
    with pytest.raises(InvalidTransition):
        engine.skip()
    with pytest.raises(InvalidTransition):
        engine.go_to_previous()
    with pytest.raises(InvalidTransition):
        await engine.respond(False)

    recorder.release.set()
    await pending

    assert engine.busy is False
    assert engine.current_word == "b"
    assert recorder.responses == [("a", True)]


@pytest.mark.asyncio
async def test_reset_rejected_while_persisting():
    """Test that a session cannot be abandoned while a response is being stored."""
    recorder = BlockingRecorder()
    engine = SessionEngine(recorder, shuffle=False)
    engine.start(["a", "b"])
    engine.reveal()

    pending = asyncio.create_task(engine.respond(True))
    await asyncio.sleep(0)

    with pytest.raises(InvalidTransition):
        engine.reset()
    assert engine.status == SessionStatus.IN_PROGRESS

    recorder.release.set()
    await pending

    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.current_word == "b"
    assert engine.memorized_count == 1

    engine.reset()
    assert engine.status == SessionStatus.NOT_STARTED
    assert engine.words == []


@pytest.mark.asyncio
async def test_storage_failure_moves_to_error_and_retry_resumes(
    engine: SessionEngine, recorder: RecordingRecorder
):
    """Test that a failed write leaves the word unanswered and retry allows answering again."""
    engine.start(["a", "b"])
    engine.reveal()
    recorder.fail_with = StorageFailure("record_response", "disk full")

    with pytest.raises(StorageFailure):
        await engine.respond(True)

    assert engine.status == SessionStatus.ERROR
    assert engine.busy is False
    assert engine.memorized_count == 0
    with pytest.raises(InvalidTransition):
        engine.start(["c"])

    recorder.fail_with = None
    await engine.retry()

    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.phase == DisplayPhase.MEANING_SHOWN
    await engine.respond(True)
    assert engine.current_word == "b"
    assert engine.memorized_count == 1


@pytest.mark.asyncio
async def test_unexpected_recorder_error_restores_phase(engine: SessionEngine, recorder: RecordingRecorder):
    """Test that a non-storage error does not leave the session stuck."""
    engine.start(["a"])
    engine.reveal()
    recorder.fail_with = RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await engine.respond(True)

    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.phase == DisplayPhase.MEANING_SHOWN
    assert engine.busy is False


@pytest.mark.asyncio
async def test_retry_outside_error_is_rejected(engine: SessionEngine):
    """Test that retry is only valid after a failure."""
    with pytest.raises(InvalidTransition):
        await engine.retry()


@pytest.mark.asyncio
async def test_load_through_loader(recorder: RecordingRecorder, source_factory, word_test_factory):
    """Test loading word tests of a source into a session."""
    source = source_factory()
    tests = [word_test_factory(source.id) for _ in range(3)]
    requested = []

    async def loader(source_id, difficulty):
        requested.append((source_id, difficulty))
        return tests

    engine = SessionEngine(recorder, loader=loader, shuffle=False)
    await engine.load(source.id)

    assert requested == [(source.id, None)]
    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.words == [test.id for test in tests]


@pytest.mark.asyncio
async def test_load_failure_and_retry(recorder: RecordingRecorder):
    """Test that a failed load moves to ERROR and retry loads again."""
    attempts = []

    async def loader(source_id, difficulty):
        attempts.append(source_id)
        if len(attempts) == 1:
            raise ConnectionError("offline")
        return ["w1", "w2"]

    engine = SessionEngine(recorder, loader=loader, shuffle=False)
    await engine.load("src")

    assert engine.status == SessionStatus.ERROR
    assert "offline" in engine.error

    await engine.retry()

    assert attempts == ["src", "src"]
    assert engine.status == SessionStatus.IN_PROGRESS
    assert engine.error is None


@pytest.mark.asyncio
async def test_load_without_loader_is_rejected(engine: SessionEngine):
    """Test that load needs a loader."""
    with pytest.raises(InvalidTransition):
        await engine.load("src")


def test_reset(engine: SessionEngine):
    """Test that reset abandons the session."""
    engine.start([])
    assert engine.status == SessionStatus.ERROR

    engine.reset()

    assert engine.status == SessionStatus.NOT_STARTED
    assert engine.error is None
    assert engine.words == []
    engine.start(["a"])
    assert engine.status == SessionStatus.IN_PROGRESS


def test_shuffle_uses_given_rng(recorder: RecordingRecorder):
    """Test that shuffling keeps every word exactly once."""
    words = [f"w{i}" for i in range(20)]
    engine = SessionEngine(recorder, shuffle=True, rng=random.Random(7))
    engine.start(words)

    assert sorted(engine.words) == sorted(words)
    assert engine.words != words


@pytest.mark.asyncio
async def test_listeners_receive_snapshots(engine: SessionEngine):
    """Test that observers see every transition and can unsubscribe."""
    snapshots = []
    unsubscribe = engine.subscribe(snapshots.append)

    engine.start(["a"])
    statuses = [snapshot.status for snapshot in snapshots]
    assert statuses == [SessionStatus.READY, SessionStatus.IN_PROGRESS]

    await answer(engine, True)
    phases = [snapshot.phase for snapshot in snapshots[2:]]
    assert DisplayPhase.MEANING_SHOWN in phases
    assert DisplayPhase.AWAITING_ADVANCE in phases
    assert snapshots[-1].status == SessionStatus.COMPLETED
    assert snapshots[-1].memorized_count == 1

    unsubscribe()
    count = len(snapshots)
    engine.reset()
    assert len(snapshots) == count


@pytest.mark.asyncio
async def test_session_progress(engine: SessionEngine):
    """Test session progress derived from a snapshot."""
    engine.start(["a", "b", "c", "d"])
    await answer(engine, True)
    engine.skip()

    progress = ProgressAggregator.session_progress(engine.snapshot())

    assert progress.current_word_index == 2
    assert progress.total_words == 4
    assert progress.memorized_count == 1
    assert progress.not_memorized_count == 0
    assert progress.completion_percentage == 50.0
