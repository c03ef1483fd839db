"""Base repository shared by the note and edit-history stores."""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Generic, Iterable, Iterator, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from avisos.exceptions import ErrorCode, StorageError
from avisos.models.db_models import get_session_factory
from avisos.storage.live import ChangeNotifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Execution option read by the engine's "begin" hook
WRITE_TRANSACTION = {"sqlite_begin_mode": "IMMEDIATE"}


class Repository(ABC, Generic[T]):
    """Common plumbing for SQLAlchemy-backed repositories.

    Subclasses read through ``read_session`` and write through
    ``write_session``; both translate SQLAlchemy failures into
    ``StorageError`` so no engine exception crosses the storage boundary.
    Successful writes are published to the change notifier after commit.

    ``lock``, when given, is held for the whole lifetime of every session.
    Engines that hand the same connection to all threads need it, since
    SQLite cannot nest a second BEGIN on a connection already in a
    transaction.
    """

    def __init__(
        self,
        engine,
        notifier: Optional[ChangeNotifier] = None,
        lock: Optional[ContextManager] = None,
    ):
        self.engine = engine
        self.session_factory = get_session_factory(engine)
        self.notifier = notifier or ChangeNotifier()
        self.lock = lock if lock is not None else nullcontext()

    @abstractmethod
    def get(self, id: int) -> Optional[T]:
        """Get an item by ID, or None if it does not exist."""

    @contextmanager
    def read_session(self, operation: str) -> Iterator[Session]:
        with self.lock:
            try:
                with self.session_factory() as session:
                    yield session
            except SQLAlchemyError as e:
                logger.error(f"Storage read failed during {operation}: {e}")
                raise StorageError(
                    f"Failed to read from the note store during {operation}",
                    operation=operation,
                    code=ErrorCode.STORAGE_READ_FAILED,
                    original_error=e,
                ) from e

    @contextmanager
    def write_session(
        self,
        operation: str,
        tables: Iterable[str],
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
    ) -> Iterator[Session]:
        """Open an immediate write transaction committed on clean exit.

        Any exception rolls the whole transaction back; nothing is published.
        """
        with self.lock:
            try:
                with self.session_factory() as session:
                    session.connection(execution_options=WRITE_TRANSACTION)
                    try:
                        yield session
                        session.commit()
                    except BaseException:
                        session.rollback()
                        raise
            except SQLAlchemyError as e:
                logger.error(f"Storage write failed during {operation}: {e}")
                raise StorageError(
                    f"Failed to write to the note store during {operation}",
                    operation=operation,
                    code=code,
                    original_error=e,
                ) from e
        # Listeners re-run their queries, so publish once the lock is free
        self.notifier.notify(tables)
