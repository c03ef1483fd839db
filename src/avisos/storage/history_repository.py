"""Repository for the append-only note edit history."""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from avisos.models.db_models import DBEditHistory
from avisos.models.schema import EditHistoryEntry, EditionSummary
from avisos.storage.base import Repository

logger = logging.getLogger(__name__)


class EditHistoryRepository(Repository[EditHistoryEntry]):
    """Repository for field-level edit history entries.

    Entries are never updated. They disappear only when their note is
    purged (foreign-key cascade). Most projections order newest first with
    the insertion ID as tie-breaker, since one edition shares one timestamp.
    """

    # ========== Writes ==========

    def append(
        self, session: Session, entries: Iterable[EditHistoryEntry]
    ) -> List[EditHistoryEntry]:
        """Insert entries inside the caller's transaction.

        Returns:
            The entries with their assigned IDs.
        """
        rows = [
            DBEditHistory(
                note_id=entry.note_id,
                field_name=entry.field_name,
                old_value=entry.old_value,
                new_value=entry.new_value,
                timestamp=entry.timestamp,
                modified_by=entry.modified_by,
                edition_number=entry.edition_number,
            )
            for entry in entries
        ]
        session.add_all(rows)
        session.flush()
        return [self._db_to_model(row) for row in rows]

    def next_edition_number(self, session: Session, note_id: int) -> int:
        """Edition to assign to the next save of ``note_id``.

        Must run inside the write transaction that inserts the entries, so
        concurrent savers of the same note cannot both read the same max.
        """
        current = session.scalar(
            select(func.coalesce(func.max(DBEditHistory.edition_number), 0))
            .where(DBEditHistory.note_id == note_id)
        )
        return (current or 0) + 1

    # ========== Reads ==========

    def get(self, id: int) -> Optional[EditHistoryEntry]:
        with self.read_session("get_edit_history_entry") as session:
            row = session.get(DBEditHistory, id)
            return self._db_to_model(row) if row is not None else None

    def for_note(
        self,
        note_id: int,
        modified_by: Optional[str] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[EditHistoryEntry]:
        """Entries for a note, newest first.

        Args:
            note_id: The note whose history to read.
            modified_by: Only entries made by this user.
            start: Only entries with timestamp >= start (epoch ms).
            end: Only entries with timestamp <= end (epoch ms).
        """
        with self.read_session("get_edit_history") as session:
            query = select(DBEditHistory).where(DBEditHistory.note_id == note_id)
            if modified_by is not None:
                query = query.where(DBEditHistory.modified_by == modified_by)
            if start is not None:
                query = query.where(DBEditHistory.timestamp >= start)
            if end is not None:
                query = query.where(DBEditHistory.timestamp <= end)
            query = query.order_by(
                DBEditHistory.timestamp.desc(), DBEditHistory.id.desc()
            )
            return [self._db_to_model(row) for row in session.scalars(query).all()]

    def count(self, note_id: int) -> int:
        with self.read_session("get_edit_history_count") as session:
            count = session.scalar(
                select(func.count(DBEditHistory.id))
                .where(DBEditHistory.note_id == note_id)
            )
            return count or 0

    def distinct_modifiers(self, note_id: int) -> List[str]:
        """Users who edited the note, alphabetically, without nulls."""
        with self.read_session("get_distinct_modifiers") as session:
            query = (
                select(DBEditHistory.modified_by)
                .where(DBEditHistory.note_id == note_id)
                .where(DBEditHistory.modified_by.is_not(None))
                .distinct()
                .order_by(DBEditHistory.modified_by.asc())
            )
            return list(session.scalars(query).all())

    def max_edition_number(self, note_id: int) -> int:
        with self.read_session("get_max_edition_number") as session:
            value = session.scalar(
                select(func.coalesce(func.max(DBEditHistory.edition_number), 0))
                .where(DBEditHistory.note_id == note_id)
            )
            return value or 0

    def editions(self, note_id: int) -> List[EditionSummary]:
        """One row per edition, newest edition first.

        Each row carries the edition's earliest timestamp and its
        alphabetically first modifier as representative.
        """
        with self.read_session("get_editions") as session:
            rows = session.execute(
                select(
                    DBEditHistory.edition_number,
                    func.min(DBEditHistory.timestamp),
                    func.min(DBEditHistory.modified_by),
                    func.count(DBEditHistory.id),
                )
                .where(DBEditHistory.note_id == note_id)
                .group_by(DBEditHistory.edition_number)
                .order_by(DBEditHistory.edition_number.desc())
            ).all()
        return [
            EditionSummary(
                note_id=note_id,
                edition_number=edition,
                timestamp=timestamp,
                modified_by=modified_by,
                change_count=count,
            )
            for edition, timestamp, modified_by, count in rows
        ]

    def changes_for_edition(
        self, note_id: int, edition_number: int
    ) -> List[EditHistoryEntry]:
        """Entries of one edition, oldest first."""
        with self.read_session("get_changes_for_edition") as session:
            query = (
                select(DBEditHistory)
                .where(DBEditHistory.note_id == note_id)
                .where(DBEditHistory.edition_number == edition_number)
                .order_by(DBEditHistory.timestamp.asc(), DBEditHistory.id.asc())
            )
            return [self._db_to_model(row) for row in session.scalars(query).all()]

    @staticmethod
    def _db_to_model(row: DBEditHistory) -> EditHistoryEntry:
        return EditHistoryEntry(
            id=row.id,
            note_id=row.note_id,
            field_name=row.field_name,
            old_value=row.old_value,
            new_value=row.new_value,
            timestamp=row.timestamp,
            modified_by=row.modified_by,
            edition_number=row.edition_number,
        )
