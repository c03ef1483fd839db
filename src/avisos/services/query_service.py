"""Read-side projections over notes and their edit history."""

import logging
from typing import Dict, List, Optional

from avisos.models.schema import (Category, DeletionType, EditHistoryEntry,
                                  EditionSummary, Note)
from avisos.storage.live import HISTORY_TABLE, NOTES_TABLE, LiveQuery
from avisos.storage.store import NoteStore

logger = logging.getLogger(__name__)


class NoteQueryService:
    """Projections used by list screens, badges, the recycle bin and history.

    Missing notes yield None, empty lists or 0; nothing here raises for an
    unknown ID. The ``live_*`` helpers return standing queries that push a
    fresh result after every committed write to the tables they read.
    """

    def __init__(self, store: NoteStore):
        self.store = store

    # ========== Notes ==========

    def get_note(self, note_id: int) -> Optional[Note]:
        return self.store.notes.get(note_id)

    def list_active_notes(
        self,
        category: Optional[Category] = None,
        subcategory: Optional[str] = None,
    ) -> List[Note]:
        """Active notes, urgent first, newest modification first.

        ``subcategory`` is ignored unless a category is given.
        """
        return self.store.notes.list_active(category, subcategory)

    def count_active_by_category(self, category: Category) -> int:
        return self.store.notes.count_active(category)

    def count_active_per_category(self) -> Dict[str, int]:
        return self.store.notes.count_active_per_category()

    def list_deleted_notes(
        self, deletion_type: Optional[DeletionType] = None
    ) -> List[Note]:
        return self.store.notes.list_deleted(deletion_type)

    # ========== Edit history ==========

    def get_edit_history(self, note_id: int) -> List[EditHistoryEntry]:
        return self.store.history.for_note(note_id)

    def get_edit_history_by_user(
        self, note_id: int, user: str
    ) -> List[EditHistoryEntry]:
        return self.store.history.for_note(note_id, modified_by=user)

    def get_edit_history_in_range(
        self, note_id: int, start: int, end: int
    ) -> List[EditHistoryEntry]:
        """Entries with ``start <= timestamp <= end``, newest first."""
        return self.store.history.for_note(note_id, start=start, end=end)

    def get_edit_history_by_user_in_range(
        self, note_id: int, user: str, start: int, end: int
    ) -> List[EditHistoryEntry]:
        return self.store.history.for_note(
            note_id, modified_by=user, start=start, end=end
        )

    def get_distinct_modifiers(self, note_id: int) -> List[str]:
        return self.store.history.distinct_modifiers(note_id)

    def get_edit_history_count(self, note_id: int) -> int:
        return self.store.history.count(note_id)

    def get_max_edition_number(self, note_id: int) -> int:
        return self.store.history.max_edition_number(note_id)

    def get_editions(self, note_id: int) -> List[EditionSummary]:
        return self.store.history.editions(note_id)

    def get_changes_for_edition(
        self, note_id: int, edition_number: int
    ) -> List[EditHistoryEntry]:
        return self.store.history.changes_for_edition(note_id, edition_number)

    # ========== Live projections ==========

    def _live(self, tables, fetch, name: str) -> LiveQuery:
        return LiveQuery(self.store.notifier, tables, fetch, name=name)

    def live_active_notes(
        self,
        category: Optional[Category] = None,
        subcategory: Optional[str] = None,
    ) -> LiveQuery[List[Note]]:
        return self._live(
            (NOTES_TABLE,),
            lambda: self.list_active_notes(category, subcategory),
            "active_notes",
        )

    def live_category_count(self, category: Category) -> LiveQuery[int]:
        return self._live(
            (NOTES_TABLE,),
            lambda: self.count_active_by_category(category),
            f"category_count:{Category(category).value}",
        )

    def live_category_counts(self) -> LiveQuery[Dict[str, int]]:
        return self._live(
            (NOTES_TABLE,), self.count_active_per_category, "category_counts"
        )

    def live_deleted_notes(
        self, deletion_type: Optional[DeletionType] = None
    ) -> LiveQuery[List[Note]]:
        return self._live(
            (NOTES_TABLE,),
            lambda: self.list_deleted_notes(deletion_type),
            "deleted_notes",
        )

    def live_edit_history(self, note_id: int) -> LiveQuery[List[EditHistoryEntry]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_edit_history(note_id),
            f"edit_history:{note_id}",
        )

    def live_editions(self, note_id: int) -> LiveQuery[List[EditionSummary]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_editions(note_id),
            f"editions:{note_id}",
        )

    def live_edit_history_by_user(
        self, note_id: int, user: str
    ) -> LiveQuery[List[EditHistoryEntry]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_edit_history_by_user(note_id, user),
            f"edit_history:{note_id}:{user}",
        )

    def live_edit_history_in_range(
        self, note_id: int, start: int, end: int
    ) -> LiveQuery[List[EditHistoryEntry]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_edit_history_in_range(note_id, start, end),
            f"edit_history:{note_id}:{start}-{end}",
        )

    def live_edit_history_by_user_in_range(
        self, note_id: int, user: str, start: int, end: int
    ) -> LiveQuery[List[EditHistoryEntry]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_edit_history_by_user_in_range(note_id, user, start, end),
            f"edit_history:{note_id}:{user}:{start}-{end}",
        )

    def live_distinct_modifiers(self, note_id: int) -> LiveQuery[List[str]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_distinct_modifiers(note_id),
            f"modifiers:{note_id}",
        )

    def live_edit_history_count(self, note_id: int) -> LiveQuery[int]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_edit_history_count(note_id),
            f"edit_history_count:{note_id}",
        )

    def live_max_edition_number(self, note_id: int) -> LiveQuery[int]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_max_edition_number(note_id),
            f"max_edition:{note_id}",
        )

    def live_changes_for_edition(
        self, note_id: int, edition_number: int
    ) -> LiveQuery[List[EditHistoryEntry]]:
        return self._live(
            (HISTORY_TABLE,),
            lambda: self.get_changes_for_edition(note_id, edition_number),
            f"edition_changes:{note_id}:{edition_number}",
        )
