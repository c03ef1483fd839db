"""Field-level diffing and edition-numbered saves."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from avisos.exceptions import ErrorCode, NoteNotFoundError, NoteValidationError
from avisos.models.schema import (Category, EditHistoryEntry, Note, SaveResult,
                                  now_millis)
from avisos.observability import timed_operation
from avisos.storage.live import HISTORY_TABLE, NOTES_TABLE
from avisos.storage.store import NoteStore

logger = logging.getLogger(__name__)


def _text(value: Optional[str]) -> Optional[str]:
    return value


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def _enum_value(value) -> Optional[str]:
    return value.value if value is not None else None


# (history field name, Note attribute, renderer), in diff order
TRACKED_FIELDS: Tuple[Tuple[str, str, Callable], ...] = (
    ("Note Name", "name", _text),
    ("Note Body", "body", _text),
    ("Contact", "contact", _text),
    ("Category", "category", _enum_value),
    ("Subcategory", "subcategory", _text),
    ("Urgent", "is_urgent", _yes_no),
)


@dataclass(frozen=True)
class FieldChange:
    """A tracked field whose rendered value differs between two snapshots."""

    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]


def diff_notes(old: Note, new: Note) -> List[FieldChange]:
    """Compare two snapshots of the same note over the tracked fields."""
    changes = []
    for field_name, attribute, render in TRACKED_FIELDS:
        old_value = render(getattr(old, attribute))
        new_value = render(getattr(new, attribute))
        if old_value != new_value:
            changes.append(FieldChange(field_name, old_value, new_value))
    return changes


def validate_input(name: Optional[str], body: Optional[str]) -> None:
    """Reject a submission whose name or body is empty after trimming.

    Raises:
        NoteValidationError: With ``field`` set to "name" or "body".
    """
    if not name or not name.strip():
        raise NoteValidationError(
            "Note name is required", field="name", code=ErrorCode.NOTE_NAME_REQUIRED
        )
    if not body or not body.strip():
        raise NoteValidationError(
            "Note body is required", field="body", code=ErrorCode.NOTE_BODY_REQUIRED
        )


def coerce_category(value) -> Category:
    """Resolve a category name, rejecting unknown ones as a field error."""
    try:
        return Category(value)
    except ValueError as e:
        raise NoteValidationError(
            f"Unknown category: {value!r}",
            field="category",
            value=value,
            code=ErrorCode.INVALID_CATEGORY,
        ) from e


_FIELD_CODES = {
    "name": ErrorCode.NOTE_NAME_REQUIRED,
    "body": ErrorCode.NOTE_BODY_REQUIRED,
    "category": ErrorCode.INVALID_CATEGORY,
    "subcategory": ErrorCode.INVALID_SUBCATEGORY,
}


def build_note(**fields) -> Note:
    """Construct a Note, translating pydantic failures into NoteValidationError."""
    try:
        return Note(**fields)
    except PydanticValidationError as e:
        error = e.errors()[0]
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else None
        message = error.get("msg", str(e))
        if field is None and "Subcategory" in message:
            field = "subcategory"
        raise NoteValidationError(
            f"Invalid note: {message}",
            field=field,
            value=fields.get(field) if field else None,
            code=_FIELD_CODES.get(field, ErrorCode.NOTE_VALIDATION_FAILED),
        ) from e


class VersioningEngine:
    """Persists note snapshots, recording every field change under an edition.

    An update runs as one immediate write transaction: the stored row is
    re-read, the next edition number is allocated, history entries are
    inserted and the note row is overwritten. Two concurrent saves of the
    same note therefore always receive distinct editions.
    """

    def __init__(self, store: NoteStore):
        self.store = store

    def save(
        self,
        old: Optional[Note],
        candidate: Note,
        acting_user: Optional[str],
        now: Optional[int] = None,
    ) -> SaveResult:
        """Create or update a note from an editor snapshot.

        Args:
            old: The snapshot the editor started from, or None for a new note.
            candidate: The submitted snapshot.
            acting_user: Identity recorded as author or modifier.
            now: Save timestamp in epoch ms (defaults to the current time).

        Returns:
            SaveResult with the persisted note and the changes written.
        """
        validate_input(candidate.name, candidate.body)
        # model_copy() skips validation, so re-check the submitted snapshot
        candidate = build_note(**candidate.model_dump())
        timestamp = now if now is not None else now_millis()

        if old is None:
            return self._create(candidate, acting_user, timestamp)
        if old.id is None:
            raise NoteValidationError(
                "Cannot update a note that was never saved", field="id"
            )
        return self._update(old.id, candidate, acting_user, timestamp)

    def _create(
        self, candidate: Note, acting_user: Optional[str], timestamp: int
    ) -> SaveResult:
        note = candidate.model_copy(
            update={
                "id": None,
                "created_date": timestamp,
                "modified_date": timestamp,
                "author": candidate.author or acting_user,
                "is_deleted": False,
                "deleted_date": None,
                "deletion_type": None,
            }
        )
        with timed_operation("create_note", category=note.category.value):
            with self.store.notes.write_session("save_note", (NOTES_TABLE,)) as session:
                created = self.store.notes.insert_row(session, note)
        logger.info(f"Created note {created.id} by {created.author}")
        return SaveResult(note=created, edition_number=None, created=True)

    def _update(
        self,
        note_id: int,
        candidate: Note,
        acting_user: Optional[str],
        timestamp: int,
    ) -> SaveResult:
        with timed_operation("save_note", note_id=note_id) as op:
            with self.store.notes.write_session(
                "save_note", (NOTES_TABLE, HISTORY_TABLE)
            ) as session:
                stored = self.store.notes.load_row(session, note_id)
                if stored is None:
                    raise NoteNotFoundError(note_id)

                # Identity, provenance and bin state always come from the row
                updated = candidate.model_copy(
                    update={
                        "id": note_id,
                        "created_date": stored.created_date,
                        "modified_date": timestamp,
                        "author": stored.author,
                        "is_deleted": stored.is_deleted,
                        "deleted_date": stored.deleted_date,
                        "deletion_type": stored.deletion_type,
                    }
                )
                changes = diff_notes(stored, updated)

                edition = None
                entries: List[EditHistoryEntry] = []
                if changes:
                    edition = self.store.history.next_edition_number(session, note_id)
                    entries = self.store.history.append(
                        session,
                        [
                            EditHistoryEntry(
                                note_id=note_id,
                                field_name=change.field_name,
                                old_value=change.old_value,
                                new_value=change.new_value,
                                timestamp=timestamp,
                                modified_by=acting_user,
                                edition_number=edition,
                            )
                            for change in changes
                        ],
                    )
                self.store.notes.update_row(session, updated)
            op["changes"] = len(entries)
            op["edition"] = edition

        if edition is None:
            logger.debug(f"Saved note {note_id} with no tracked changes")
        else:
            logger.info(
                f"Saved note {note_id} as edition {edition} "
                f"({len(entries)} change(s) by {acting_user})"
            )
        return SaveResult(note=updated, edition_number=edition, changes=tuple(entries))
