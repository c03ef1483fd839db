"""Storage layer for avisos."""

from avisos.storage.base import Repository
from avisos.storage.history_repository import EditHistoryRepository
from avisos.storage.live import ChangeNotifier, LiveQuery, Subscription
from avisos.storage.note_repository import NoteRepository
from avisos.storage.store import NoteStore

__all__ = [
    "Repository",
    "NoteRepository",
    "EditHistoryRepository",
    "ChangeNotifier",
    "LiveQuery",
    "Subscription",
    "NoteStore",
]
