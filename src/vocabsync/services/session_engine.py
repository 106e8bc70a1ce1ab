"""State machine driving one study session."""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Hashable, List, Optional, Protocol, Sequence

from vocabsync.config import settings
from vocabsync.exceptions import InvalidTransition, StorageFailure
from vocabsync.models.data_models import DifficultyLevel, LearningRecordData
from vocabsync.models.progress_models import percentage
from vocabsync.models.session_models import (
    DisplayPhase,
    HistoryEntry,
    SessionSnapshot,
    SessionStatus,
)
from vocabsync.monitoring import sessions_completed, sessions_started

logger = logging.getLogger(__name__)

NO_WORDS_AVAILABLE = "no words available"


class ResponseRecorder(Protocol):
    """Anything that can persist a study outcome for a word."""

    def record_response(self, word_id: str, is_memorized: bool) -> LearningRecordData: ...


WordLoader = Callable[[str, Optional[DifficultyLevel]], Awaitable[Sequence[Any]]]
SessionListener = Callable[[SessionSnapshot], None]


class SessionEngine:
    """Runs one study session over an ordered list of word ids.

    Lifecycle: NOT_STARTED -> LOADING -> READY -> IN_PROGRESS -> COMPLETED,
    with ERROR reachable from LOADING and IN_PROGRESS. Inside IN_PROGRESS each
    word goes WORD_SHOWN -> MEANING_SHOWN -> (response persisted) -> next word.
    A response only counts once the meaning was revealed.

    Persistence is delegated to the recorder on a worker thread; while that
    call is in flight every other command is rejected.
    """

    def __init__(
        self,
        recorder: ResponseRecorder,
        loader: Optional[WordLoader] = None,
        shuffle: Optional[bool] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the engine with the response recorder and an optional word loader."""
        self.recorder = recorder
        self.loader = loader
        self.shuffle = settings.session.shuffle if shuffle is None else shuffle
        self.rng = rng or random.Random()
        self._listeners: List[SessionListener] = []
        self._load_args: Optional[tuple] = None
        self._failed_in: Optional[SessionStatus] = None
        self._clear()

    def _clear(self) -> None:
        self.status = SessionStatus.NOT_STARTED
        self.phase = DisplayPhase.WORD_SHOWN
        self.words: List[Hashable] = []
        self.current_index = 0
        self.memorized_count = 0
        self.not_memorized_count = 0
        self.error: Optional[str] = None
        self.history: List[HistoryEntry] = []
        self._busy = False

    # Observation

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every transition."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status,
            phase=self.phase,
            words=tuple(self.words),
            current_index=self.current_index,
            memorized_count=self.memorized_count,
            not_memorized_count=self.not_memorized_count,
            error=self.error,
            busy=self._busy,
        )

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # Lifecycle

    async def load(self, source_id: str, difficulty: Optional[DifficultyLevel] = None) -> None:
        """Load the words of a source through the loader and start a session over them."""
        if self.loader is None:
            raise InvalidTransition("load", self.status.value)
        self._require_not_busy("load")
        if self.status == SessionStatus.ERROR:
            raise InvalidTransition("load", self.status.value)

        self._load_args = (source_id, difficulty)
        self.status = SessionStatus.LOADING
        self.error = None
        self._publish()

        try:
            tests = await self.loader(source_id, difficulty)
        except Exception as e:
            logger.error(f"Failed to load word tests for source {source_id}: {e}")
            self._fail(f"failed to load word tests: {e}", SessionStatus.LOADING)
            return

        self.start([getattr(test, "id", test) for test in tests])

    def start(self, words: Sequence[Hashable]) -> None:
        """Start a session over the given word ids."""
        self._require_not_busy("start")
        if self.status == SessionStatus.ERROR:
            raise InvalidTransition("start", self.status.value)

        words = list(words)
        self.history = []
        self.current_index = 0
        self.memorized_count = 0
        self.not_memorized_count = 0
        self.phase = DisplayPhase.WORD_SHOWN

        if not words:
            self.words = []
            self._fail(NO_WORDS_AVAILABLE, SessionStatus.LOADING)
            return

        if self.shuffle:
            self.rng.shuffle(words)
        self.words = words
        self.error = None
        self.status = SessionStatus.READY
        self._publish()

        self.status = SessionStatus.IN_PROGRESS
        sessions_started.inc()
        logger.info(f"Started new session with {len(words)} words")
        self._publish()

    async def retry(self) -> None:
        """Leave the ERROR state by repeating the step that failed."""
        if self.status != SessionStatus.ERROR:
            raise InvalidTransition("retry", self.status.value)

        if self._failed_in == SessionStatus.IN_PROGRESS:
            # Persisting the response failed; let the user answer the same word again
            self.status = SessionStatus.IN_PROGRESS
            self.phase = DisplayPhase.MEANING_SHOWN
            self.error = None
            self._failed_in = None
            self._publish()
            return

        if self._load_args is None:
            raise InvalidTransition("retry", self.status.value)
        self.status = SessionStatus.NOT_STARTED
        self._failed_in = None
        await self.load(*self._load_args)

    def reset(self) -> None:
        """Abandon the session and return to NOT_STARTED."""
        self._require_not_busy("reset")
        self._clear()
        self._failed_in = None
        self._publish()

    def _fail(self, reason: str, failed_in: SessionStatus) -> None:
        self.status = SessionStatus.ERROR
        self.error = reason
        self._failed_in = failed_in
        self._busy = False
        self._publish()

    # Per-word commands

    def reveal(self) -> None:
        """Show the meaning of the current word. No-op once already revealed."""
        self._require_in_progress("reveal")
        if self.phase != DisplayPhase.WORD_SHOWN:
            return
        self.phase = DisplayPhase.MEANING_SHOWN
        self._publish()

    async def respond(self, memorized: bool) -> LearningRecordData:
        """Record the outcome for the current word and advance."""
        self._require_in_progress("respond")
        if self.phase != DisplayPhase.MEANING_SHOWN:
            raise self._reject("respond")

        word_id = self.words[self.current_index]
        self.phase = DisplayPhase.AWAITING_ADVANCE
        self._busy = True
        self._publish()

        try:
            record = await asyncio.to_thread(self.recorder.record_response, word_id, memorized)
        except StorageFailure as e:
            logger.error(f"Failed to record response for word {word_id}: {e}")
            self._fail(str(e), SessionStatus.IN_PROGRESS)
            raise
        except Exception:
            self._busy = False
            self.phase = DisplayPhase.MEANING_SHOWN
            self._publish()
            raise

        self._busy = False
        if memorized:
            self.memorized_count += 1
        else:
            self.not_memorized_count += 1
        self.history.append(HistoryEntry(index=self.current_index, memorized=memorized))
        self._advance()
        return record

    def skip(self) -> None:
        """Move to the next word without recording a response."""
        self._require_in_progress("skip")
        self.history.append(HistoryEntry(index=self.current_index, memorized=None))
        self._advance()

    def go_to_previous(self) -> bool:
        """Undo the last forward step, restoring the counters exactly.

        Returns False when already at the first word. The learning record
        written for an undone response is kept; only session counters change.
        """
        if self.status not in (SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED):
            raise self._reject("go_to_previous")
        self._require_not_busy("go_to_previous")
        if not self.history:
            return False

        entry = self.history.pop()
        if entry.memorized is True:
            self.memorized_count -= 1
        elif entry.memorized is False:
            self.not_memorized_count -= 1
        self.current_index = entry.index
        self.phase = DisplayPhase.WORD_SHOWN
        self.status = SessionStatus.IN_PROGRESS
        self._publish()
        return True

    def _advance(self) -> None:
        self.current_index += 1
        if self.current_index >= len(self.words):
            self.status = SessionStatus.COMPLETED
            self.phase = DisplayPhase.WORD_SHOWN
            sessions_completed.inc()
            logger.info(
                f"Session completed: {self.memorized_count} memorized, "
                f"{self.not_memorized_count} not memorized"
            )
        else:
            self.phase = DisplayPhase.WORD_SHOWN
        self._publish()

    # Guards

    def _reject(self, operation: str) -> InvalidTransition:
        logger.debug(f"Rejected {operation} in {self.status.value}/{self.phase.value}")
        return InvalidTransition(operation, self.status.value, self.phase.value)

    def _require_not_busy(self, operation: str) -> None:
        if self._busy:
            raise self._reject(operation)

    def _require_in_progress(self, operation: str) -> None:
        self._require_not_busy(operation)
        if self.status != SessionStatus.IN_PROGRESS:
            raise self._reject(operation)

    # Derived reads

    @property
    def current_word(self) -> Optional[Hashable]:
        if 0 <= self.current_index < len(self.words):
            return self.words[self.current_index]
        return None

    @property
    def busy(self) -> bool:
        return self._busy

    def progress_percentage(self) -> float:
        return percentage(self.current_index, len(self.words))

    def remaining_count(self) -> int:
        return max(0, len(self.words) - self.current_index)

    def session_summary(self) -> str:
        total = self.memorized_count + self.not_memorized_count
        if total == 0:
            return "No words completed"
        rate = int(percentage(self.memorized_count, total))
        return f"{self.memorized_count}/{total} words memorized ({rate}%)"
