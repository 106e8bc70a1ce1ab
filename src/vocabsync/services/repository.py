"""Shared transaction handling for the SQLAlchemy-backed stores."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from vocabsync.exceptions import StorageFailure
from vocabsync.monitoring import storage_errors

logger = logging.getLogger(__name__)


class Repository:
    """Base class for stores that run each public operation in one transaction."""

    def __init__(self, session_factory: sessionmaker):
        """Initialize the store with a session factory."""
        self.session_factory = session_factory

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        """Open a session, commit on success, roll back and raise StorageFailure on error."""
        db = self.session_factory()
        try:
            with db.begin():
                yield db
        except SQLAlchemyError as e:
            storage_errors.labels(operation=operation).inc()
            logger.error(f"{type(self).__name__}.{operation} failed: {e}")
            raise StorageFailure(operation, str(e)) from e
        finally:
            db.close()
