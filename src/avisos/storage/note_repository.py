"""Repository for note storage and retrieval."""

import logging
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from avisos.exceptions import ErrorCode, StorageError
from avisos.models.db_models import DBNote
from avisos.models.schema import Category, DeletionType, Note
from avisos.storage.base import Repository
from avisos.storage.live import HISTORY_TABLE, NOTES_TABLE

logger = logging.getLogger(__name__)

# Purging a note cascades to its history, so both tables change
PURGE_TABLES = (NOTES_TABLE, HISTORY_TABLE)


class NoteRepository(Repository[Note]):
    """Repository for notes and their soft-delete state.

    Active notes are rows with ``is_deleted = 0``; rows in the recycle bin
    stay in the table until they are purged. Deleting a row removes its
    edit history through the ``ON DELETE CASCADE`` foreign key.
    """

    # ========== Single-note access ==========

    def get(self, id: int) -> Optional[Note]:
        """Get a note by ID.

        Returns:
            Note if found (active or in the recycle bin), None otherwise.
        """
        with self.read_session("get_note") as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                return None
            return self._db_to_model(db_note)

    def delete(self, id: int) -> bool:
        """Remove a note row permanently (history follows by cascade).

        Returns:
            True if a row was deleted, False if the ID was unknown.
        """
        with self.write_session(
            "delete_note", PURGE_TABLES, code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                return False
            session.delete(db_note)
        logger.info(f"Permanently deleted note {id}")
        return True

    # ========== Session-level helpers (used inside a caller's transaction) ==========

    def insert_row(self, session: Session, note: Note) -> Note:
        db_note = DBNote(**self._model_to_columns(note))
        session.add(db_note)
        session.flush()
        return note.model_copy(update={"id": db_note.id})

    def load_row(self, session: Session, id: int) -> Optional[Note]:
        db_note = session.get(DBNote, id)
        if db_note is None:
            return None
        return self._db_to_model(db_note)

    def update_row(self, session: Session, note: Note) -> None:
        db_note = session.get(DBNote, note.id) if note.id is not None else None
        if db_note is None:
            raise StorageError(
                f"Cannot update note {note.id}: no such row",
                operation="update_note",
                code=ErrorCode.STORAGE_WRITE_FAILED,
            )
        for column, value in self._model_to_columns(note).items():
            setattr(db_note, column, value)
        session.flush()

    # ========== Soft-delete state ==========

    def mark_deleted(
        self, id: int, deletion_type: DeletionType, deleted_date: int
    ) -> Optional[Note]:
        """Move a note into the recycle bin.

        Returns:
            The updated note, or None if the ID was unknown.
        """
        with self.write_session("soft_delete", (NOTES_TABLE,)) as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                return None
            db_note.is_deleted = True
            db_note.deleted_date = deleted_date
            db_note.deletion_type = DeletionType(deletion_type).value
            session.flush()
            return self._db_to_model(db_note)

    def clear_deleted(self, id: int) -> Optional[Note]:
        """Bring a note back from the recycle bin.

        Returns:
            The updated note, or None if the ID was unknown.
        """
        with self.write_session("restore", (NOTES_TABLE,)) as session:
            db_note = session.get(DBNote, id)
            if db_note is None:
                return None
            db_note.is_deleted = False
            db_note.deleted_date = None
            db_note.deletion_type = None
            session.flush()
            return self._db_to_model(db_note)

    def purge_deleted_before(self, cutoff: int) -> int:
        """Delete every recycle-bin note whose deleted_date is before ``cutoff``.

        Runs as one statement inside one transaction.

        Returns:
            Number of notes purged.
        """
        with self.write_session(
            "purge_expired", PURGE_TABLES, code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            result = session.execute(
                delete(DBNote)
                .where(DBNote.is_deleted.is_(True))
                .where(DBNote.deleted_date < cutoff)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    def purge_deleted(self, deletion_type: Optional[DeletionType] = None) -> int:
        """Delete every note in the recycle bin, optionally of one type."""
        with self.write_session(
            "empty_recycle_bin", PURGE_TABLES, code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            stmt = delete(DBNote).where(DBNote.is_deleted.is_(True))
            if deletion_type is not None:
                stmt = stmt.where(
                    DBNote.deletion_type == DeletionType(deletion_type).value
                )
            result = session.execute(
                stmt.execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    # ========== Listings ==========

    def list_active(
        self,
        category: Optional[Category] = None,
        subcategory: Optional[str] = None,
    ) -> List[Note]:
        """Active notes, urgent first, then most recently modified first.

        Args:
            category: Only notes in this category.
            subcategory: Only notes with this subcategory (requires category).
        """
        with self.read_session("list_active_notes") as session:
            query = select(DBNote).where(DBNote.is_deleted.is_(False))
            if category is not None:
                query = query.where(DBNote.category == Category(category).value)
                if subcategory is not None:
                    query = query.where(DBNote.subcategory == subcategory)
            query = query.order_by(
                DBNote.is_urgent.desc(), DBNote.modified_date.desc(), DBNote.id.desc()
            )
            return [self._db_to_model(db) for db in session.scalars(query).all()]

    def count_active(self, category: Category) -> int:
        with self.read_session("count_active_notes") as session:
            count = session.scalar(
                select(func.count(DBNote.id))
                .where(DBNote.is_deleted.is_(False))
                .where(DBNote.category == Category(category).value)
            )
            return count or 0

    def count_active_per_category(self) -> Dict[str, int]:
        """Badge counters: number of active notes for every category."""
        counts = {category.value: 0 for category in Category}
        with self.read_session("count_active_per_category") as session:
            rows = session.execute(
                select(DBNote.category, func.count(DBNote.id))
                .where(DBNote.is_deleted.is_(False))
                .group_by(DBNote.category)
            ).all()
        for category, count in rows:
            counts[category] = count
        return counts

    def list_deleted(self, deletion_type: Optional[DeletionType] = None) -> List[Note]:
        """Recycle-bin notes, most recently deleted first."""
        with self.read_session("list_deleted_notes") as session:
            query = select(DBNote).where(DBNote.is_deleted.is_(True))
            if deletion_type is not None:
                query = query.where(
                    DBNote.deletion_type == DeletionType(deletion_type).value
                )
            query = query.order_by(DBNote.deleted_date.desc(), DBNote.id.desc())
            return [self._db_to_model(db) for db in session.scalars(query).all()]

    # ========== Conversion ==========

    @staticmethod
    def _model_to_columns(note: Note) -> Dict[str, object]:
        return {
            "name": note.name,
            "body": note.body,
            "contact": note.contact,
            "category": note.category.value,
            "subcategory": note.subcategory,
            "created_date": note.created_date,
            "modified_date": note.modified_date,
            "is_urgent": note.is_urgent,
            "author": note.author,
            "is_deleted": note.is_deleted,
            "deleted_date": note.deleted_date,
            "deletion_type": (
                note.deletion_type.value if note.deletion_type is not None else None
            ),
        }

    @staticmethod
    def _db_to_model(db_note: DBNote) -> Note:
        """Convert DBNote to Note model."""
        return Note(
            id=db_note.id,
            name=db_note.name,
            body=db_note.body,
            contact=db_note.contact,
            category=db_note.category,
            subcategory=db_note.subcategory,
            created_date=db_note.created_date,
            modified_date=db_note.modified_date,
            is_urgent=bool(db_note.is_urgent),
            author=db_note.author,
            is_deleted=bool(db_note.is_deleted),
            deleted_date=db_note.deleted_date,
            deletion_type=db_note.deletion_type,
        )
