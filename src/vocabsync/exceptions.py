"""Error taxonomy of the sync engine."""
from typing import Optional


class VocabSyncError(Exception):
    """Base class for all engine errors."""


class StorageFailure(VocabSyncError):
    """The local store is unavailable or rejected a write."""

    def __init__(self, operation: str, message: str = ""):
        self.operation = operation
        super().__init__(f"Storage operation '{operation}' failed" + (f": {message}" if message else ""))


class InvalidTransition(VocabSyncError):
    """A session operation was invoked in a state that does not allow it."""

    def __init__(self, operation: str, status: str, phase: Optional[str] = None):
        self.operation = operation
        self.status = status
        self.phase = phase
        where = status if phase is None else f"{status}/{phase}"
        super().__init__(f"Cannot {operation} while session is {where}")


class SyncFailure(VocabSyncError):
    """A drained operation could not be delivered to the remote API."""

    def __init__(self, operation_id: int, kind: str, reason: str):
        self.operation_id = operation_id
        self.kind = kind
        self.reason = reason
        super().__init__(f"Sync operation {operation_id} ({kind}) failed: {reason}")


class ExhaustedRetries(VocabSyncError):
    """A sync operation reached the retry ceiling."""

    def __init__(self, operation_id: int, retry_count: int):
        self.operation_id = operation_id
        self.retry_count = retry_count
        super().__init__(f"Sync operation {operation_id} abandoned after {retry_count} attempts")


class ValidationError(VocabSyncError, ValueError):
    """Model data failed validation."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class RemoteApiError(VocabSyncError):
    """The remote API returned an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: Optional[bool] = None):
        self.status_code = status_code
        self.message = message
        self.retryable = retryable
        super().__init__(f"HTTP {status_code}: {message}" if status_code else message)

    @property
    def is_retryable(self) -> bool:
        """Server errors, timeouts and throttling are worth another attempt."""
        if self.retryable is not None:
            return self.retryable
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in (408, 429)
