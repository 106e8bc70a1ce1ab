"""Models for study session state."""
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional, Tuple


class SessionStatus(Enum):
    """Lifecycle of a study session."""
    NOT_STARTED = "not_started"
    LOADING = "loading"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class DisplayPhase(Enum):
    """What is shown for the current word."""
    WORD_SHOWN = "word_shown"
    MEANING_SHOWN = "meaning_shown"
    AWAITING_ADVANCE = "awaiting_advance"  # response is being persisted


@dataclass(frozen=True)
class HistoryEntry:
    """One forward step of a session, kept so it can be undone exactly."""
    index: int
    memorized: Optional[bool]  # None when the word was skipped


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session published to observers."""
    status: SessionStatus
    phase: DisplayPhase
    words: Tuple[Hashable, ...]
    current_index: int
    memorized_count: int
    not_memorized_count: int
    error: Optional[str] = None
    busy: bool = False

    @property
    def current_word(self) -> Optional[Hashable]:
        if 0 <= self.current_index < len(self.words):
            return self.words[self.current_index]
        return None

    @property
    def total_words(self) -> int:
        return len(self.words)
