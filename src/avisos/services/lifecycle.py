"""Two-stage deletion: recycle bin first, permanent removal after retention."""

import logging
import math
from typing import Optional, Union

from avisos.config import MILLIS_PER_DAY, config
from avisos.exceptions import ErrorCode, NoteNotFoundError, ValidationError
from avisos.models.schema import DeletionType, Note, now_millis
from avisos.observability import timed_operation
from avisos.storage.store import NoteStore

logger = logging.getLogger(__name__)


def _coerce_deletion_type(
    deletion_type: Union[DeletionType, str, None],
) -> DeletionType:
    try:
        return DeletionType(deletion_type)
    except ValueError:
        valid = ", ".join(t.value for t in DeletionType)
        raise ValidationError(
            f"Invalid deletion type '{deletion_type}'. Must be one of: {valid}",
            field="deletion_type",
            value=deletion_type,
            code=ErrorCode.INVALID_DELETION_TYPE,
        )


class DeletionLifecycleManager:
    """Moves notes between Active, Soft-deleted and Purged.

    Active -> Soft-deleted via ``soft_delete``; back via ``restore``.
    Soft-deleted -> Purged via ``permanently_delete`` or, once the retention
    window has passed, ``purge_expired``. Purging removes the note's edit
    history with it.
    """

    def __init__(self, store: NoteStore, retention_days: Optional[int] = None):
        self.store = store
        self.retention_days = retention_days or config.retention_days

    def soft_delete(
        self,
        note_id: int,
        deletion_type: Union[DeletionType, str],
        now: Optional[int] = None,
    ) -> Note:
        """Move a note into the recycle bin.

        Deleting an already soft-deleted note overwrites its date and type.
        """
        kind = _coerce_deletion_type(deletion_type)
        deleted_date = now if now is not None else now_millis()
        note = self.store.notes.mark_deleted(note_id, kind, deleted_date)
        if note is None:
            raise NoteNotFoundError(note_id)
        logger.info(f"Moved note {note_id} to the recycle bin ({kind.value})")
        return note

    def restore(self, note_id: int) -> Note:
        note = self.store.notes.clear_deleted(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        logger.info(f"Restored note {note_id} from the recycle bin")
        return note

    def permanently_delete(self, note_id: int) -> None:
        """Remove a note and its edit history for good."""
        if not self.store.notes.delete(note_id):
            raise NoteNotFoundError(note_id)

    def purge_expired(
        self, retention_days: Optional[int] = None, now: Optional[int] = None
    ) -> int:
        """Purge every soft-deleted note older than the retention window.

        A note deleted exactly ``retention_days`` ago is kept; one millisecond
        more and it is purged.

        Returns:
            Number of notes purged.
        """
        days = retention_days if retention_days is not None else self.retention_days
        if days < 1:
            raise ValidationError(
                "retention_days must be >= 1", field="retention_days", value=days
            )
        current = now if now is not None else now_millis()
        cutoff = current - days * MILLIS_PER_DAY

        with timed_operation("purge_expired", retention_days=days) as op:
            purged = self.store.notes.purge_deleted_before(cutoff)
            op["purged"] = purged
        if purged:
            logger.info(f"Purged {purged} note(s) deleted more than {days} days ago")
        return purged

    def empty_recycle_bin(
        self, deletion_type: Union[DeletionType, str, None] = None
    ) -> int:
        """Purge everything in the recycle bin, or only one deletion type."""
        kind = _coerce_deletion_type(deletion_type) if deletion_type else None
        purged = self.store.notes.purge_deleted(kind)
        logger.info(
            f"Emptied recycle bin ({kind.value if kind else 'all'}): {purged} note(s)"
        )
        return purged

    def days_until_purge(self, note: Note, now: Optional[int] = None) -> Optional[int]:
        """Whole days left before the sweep may purge ``note``.

        Returns None for an active note and 0 once the note has expired.
        """
        expires = note.expires_at(self.retention_days)
        if expires is None:
            return None
        current = now if now is not None else now_millis()
        remaining = expires - current
        if remaining <= 0:
            return 0
        return math.ceil(remaining / MILLIS_PER_DAY)
