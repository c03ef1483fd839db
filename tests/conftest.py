"""Common test fixtures for avisos."""

import logging
import tempfile
from pathlib import Path

import pytest

from avisos.config import config
from avisos.identity import UserSession
from avisos.models.schema import Category, EditHistoryEntry, Note
from avisos.services.lifecycle import DeletionLifecycleManager
from avisos.services.note_service import NoteService
from avisos.services.query_service import NoteQueryService
from avisos.services.versioning import VersioningEngine
from avisos.storage.live import HISTORY_TABLE
from avisos.storage.store import NoteStore

# Fixed clock for deterministic timestamps (2023-11-14T22:13:20Z)
BASE_TIME = 1_700_000_000_000


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        with tempfile.TemporaryDirectory() as log_dir:
            yield Path(db_dir), Path(log_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    db_dir, log_dir = temp_dirs
    monkeypatch.setattr(config, "database_path", db_dir / "test_avisos.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "retention_days", 15)
    monkeypatch.setattr(config, "log_dir", log_dir)
    monkeypatch.setattr(
        config,
        "available_users",
        ["Pedro", "Isa", "Lourdes", "Alexia", "Albert", "Joan"],
    )
    yield config


@pytest.fixture
def store(test_config):
    """A file-backed note store, closed after the test."""
    note_store = NoteStore.open(test_config.get_db_url())
    yield note_store
    note_store.close()


@pytest.fixture
def user_session(test_config):
    return UserSession("Pedro")


@pytest.fixture
def note_service(store, user_session):
    return NoteService(store, session=user_session)


@pytest.fixture
def versioning(store):
    return VersioningEngine(store)


@pytest.fixture
def lifecycle(store):
    return DeletionLifecycleManager(store, retention_days=15)


@pytest.fixture
def queries(store):
    return NoteQueryService(store)


@pytest.fixture
def make_note(versioning):
    """Create and persist a note, returning the stored snapshot."""

    def _make(
        name="Call supplier",
        body="Ask about the delivery",
        category=Category.TRUCAR,
        subcategory=None,
        contact=None,
        is_urgent=False,
        author="Pedro",
        now=BASE_TIME,
    ) -> Note:
        candidate = Note(
            name=name,
            body=body,
            category=category,
            subcategory=subcategory,
            contact=contact,
            is_urgent=is_urgent,
        )
        return versioning.save(None, candidate, author, now=now).note

    return _make


@pytest.fixture
def clean_logging():
    """Remove handlers that configure_logging attached during the test."""
    avisos_logger = logging.getLogger("avisos")
    before = list(avisos_logger.handlers)
    level = avisos_logger.level
    yield
    for handler in list(avisos_logger.handlers):
        if handler not in before:
            avisos_logger.removeHandler(handler)
            handler.close()
    avisos_logger.setLevel(level)


@pytest.fixture
def add_history(store):
    """Insert hand-built history entries in one transaction."""

    def _add(*entries: EditHistoryEntry):
        with store.history.write_session("seed_history", (HISTORY_TABLE,)) as session:
            return store.history.append(session, entries)

    return _add
