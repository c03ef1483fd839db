"""Store handle bundling the engine, change notifier and repositories."""
import logging
import threading
from typing import Optional

from sqlalchemy.engine import Engine

from avisos.models.db_models import init_db, shares_connection
from avisos.storage.history_repository import EditHistoryRepository
from avisos.storage.live import ChangeNotifier
from avisos.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class NoteStore:
    """Explicitly constructed handle to one note database.

    Created at application startup and passed to the services that need
    it; ``close()`` disposes the engine at shutdown. Both repositories share
    the same engine and change notifier, so a write through either one
    refreshes live queries built on the other. In-memory databases also
    share one lock, which serializes every session on their single
    connection.
    """

    def __init__(self, engine: Engine, notifier: Optional[ChangeNotifier] = None):
        self.engine = engine
        self.notifier = notifier or ChangeNotifier()
        self.lock = threading.RLock() if shares_connection(engine) else None
        self.notes = NoteRepository(engine, self.notifier, self.lock)
        self.history = EditHistoryRepository(engine, self.notifier, self.lock)
        self._closed = False

    @classmethod
    def open(cls, db_url: Optional[str] = None) -> "NoteStore":
        """Initialize the schema at ``db_url`` (config default) and open it."""
        engine = init_db(db_url)
        logger.info(f"NoteStore opened: {engine.url}")
        return cls(engine)

    def close(self) -> None:
        if not self._closed:
            self.engine.dispose()
            self._closed = True
            logger.info("NoteStore closed")

    def __enter__(self) -> "NoteStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
