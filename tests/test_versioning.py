"""Tests for field diffing and edition-numbered saves."""
import threading
from typing import List

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from avisos.config import MILLIS_PER_DAY
from avisos.exceptions import (ErrorCode, NoteNotFoundError,
                               NoteValidationError, StorageError)
from avisos.models.db_models import DBEditHistory
from avisos.models.schema import Category, DeletionType, Note
from avisos.services.versioning import TRACKED_FIELDS, diff_notes, validate_input

BASE_TIME = 1_700_000_000_000


def _edit(note: Note, **changes) -> Note:
    return note.model_copy(update=changes)


class TestDiffNotes:
    """Tests for the pure diff function."""

    def test_identical_snapshots_have_no_changes(self):
        note = Note(name="n", body="b", category="Notes")
        assert diff_notes(note, note.model_copy()) == []

    def test_changes_follow_tracked_field_order(self):
        old = Note(name="a", body="b", category="Notes", is_urgent=False)
        new = Note(name="z", body="b", category="Trucar", contact="Isa", is_urgent=True)
        changes = diff_notes(old, new)
        assert [c.field_name for c in changes] == [
            "Note Name", "Contact", "Category", "Urgent",
        ]

    def test_urgent_rendered_yes_no(self):
        old = Note(name="a", body="b", category="Notes", is_urgent=True)
        new = _edit(old, is_urgent=False)
        (change,) = diff_notes(old, new)
        assert (change.old_value, change.new_value) == ("Yes", "No")

    def test_category_rendered_by_value(self):
        old = Note(name="a", body="b", category="Compra")
        new = Note(name="a", body="b", category="Venda")
        (change,) = diff_notes(old, new)
        assert (change.old_value, change.new_value) == ("Compra", "Venda")

    def test_cleared_contact_has_null_new_value(self):
        old = Note(name="a", body="b", category="Notes", contact="Albert")
        new = _edit(old, contact=None)
        (change,) = diff_notes(old, new)
        assert change.field_name == "Contact"
        assert change.old_value == "Albert"
        assert change.new_value is None

    def test_subcategory_is_tracked(self):
        old = Note(name="a", body="b", category="Factures", subcategory="Per pagar")
        new = _edit(old, subcategory="Passades")
        assert [c.field_name for c in diff_notes(old, new)] == ["Subcategory"]

    def test_author_is_not_tracked(self):
        assert "author" not in [attr for _, attr, _ in TRACKED_FIELDS]


class TestValidateInput:
    """Tests for editor input validation."""

    def test_accepts_non_empty(self):
        validate_input("name", "body")

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_name(self, name):
        with pytest.raises(NoteValidationError) as exc_info:
            validate_input(name, "body")
        assert exc_info.value.field == "name"
        assert exc_info.value.code is ErrorCode.NOTE_NAME_REQUIRED

    def test_empty_body(self):
        with pytest.raises(NoteValidationError) as exc_info:
            validate_input("name", "\n")
        assert exc_info.value.field == "body"
        assert exc_info.value.code is ErrorCode.NOTE_BODY_REQUIRED


class TestCreate:
    """Tests for the creation path of VersioningEngine.save."""

    def test_create_assigns_id_and_dates(self, versioning, queries):
        candidate = Note(name="Order paper", body="A4, 5 boxes", category="Encarregar")
        result = versioning.save(None, candidate, "Isa", now=BASE_TIME)

        assert result.created is True
        assert result.edition_number is None
        assert result.changes == ()
        assert result.note.id is not None
        assert result.note.created_date == BASE_TIME
        assert result.note.modified_date == BASE_TIME
        assert result.note.author == "Isa"
        assert queries.get_note(result.note.id) == result.note

    def test_create_records_no_history(self, make_note, queries):
        note = make_note()
        assert queries.get_edit_history_count(note.id) == 0
        assert queries.get_max_edition_number(note.id) == 0

    def test_create_keeps_explicit_author(self, versioning):
        candidate = Note(name="n", body="b", category="Notes", author="Joan")
        assert versioning.save(None, candidate, "Isa").note.author == "Joan"

    def test_create_always_active(self, versioning):
        candidate = Note(
            name="n",
            body="b",
            category="Notes",
            is_deleted=True,
            deleted_date=BASE_TIME,
            deletion_type="Esborrades",
        )
        note = versioning.save(None, candidate, "Isa").note
        assert note.is_deleted is False
        assert note.deleted_date is None

    def test_ids_are_distinct(self, make_note):
        ids = {make_note(name=f"note {i}").id for i in range(5)}
        assert len(ids) == 5


class TestEditionMonotonicity:
    """Every save with changes gets max + 1."""

    def test_consecutive_saves(self, versioning, make_note, queries):
        note = make_note()
        editions = []
        for i in range(1, 4):
            result = versioning.save(
                note, _edit(note, body=f"body v{i}"), "Pedro", now=BASE_TIME + i
            )
            editions.append(result.edition_number)
            note = result.note

        assert editions == [1, 2, 3]
        assert queries.get_max_edition_number(note.id) == 3

    def test_editions_are_per_note(self, versioning, make_note):
        first = make_note(name="first")
        second = make_note(name="second")
        versioning.save(first, _edit(first, body="x"), "Pedro")
        versioning.save(first, _edit(first, body="y"), "Pedro")
        result = versioning.save(second, _edit(second, body="z"), "Pedro")
        assert result.edition_number == 1

    def test_concurrent_saves_get_distinct_editions(self, versioning, make_note, queries):
        note = make_note()
        results: List[int] = []
        errors: List[Exception] = []
        lock = threading.Lock()

        def save(index: int):
            try:
                result = versioning.save(note, _edit(note, body=f"writer {index}"), "Isa")
                with lock:
                    results.append(result.edition_number)
            except Exception as e:
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=save, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(results) == [1, 2, 3, 4, 5, 6]
        assert queries.get_max_edition_number(note.id) == 6
        assert len(queries.get_editions(note.id)) == 6


class TestChangeSetCompleteness:
    """A save records exactly the differing tracked fields."""

    def test_entries_match_changed_fields(self, versioning, make_note):
        note = make_note(contact=None, is_urgent=False)
        save_time = BASE_TIME + 60_000
        result = versioning.save(
            note,
            _edit(note, name="Call supplier again", contact="Lourdes", is_urgent=True),
            "Alexia",
            now=save_time,
        )

        entries = {e.field_name: e for e in result.changes}
        assert set(entries) == {"Note Name", "Contact", "Urgent"}
        assert entries["Note Name"].old_value == "Call supplier"
        assert entries["Note Name"].new_value == "Call supplier again"
        assert entries["Contact"].old_value is None
        assert entries["Contact"].new_value == "Lourdes"
        assert (entries["Urgent"].old_value, entries["Urgent"].new_value) == ("No", "Yes")
        for entry in result.changes:
            assert entry.timestamp == save_time
            assert entry.modified_by == "Alexia"
            assert entry.edition_number == 1
            assert entry.id is not None

    def test_note_row_updated(self, versioning, make_note, queries):
        note = make_note()
        versioning.save(note, _edit(note, body="new body"), "Isa", now=BASE_TIME + 5)
        stored = queries.get_note(note.id)
        assert stored.body == "new body"
        assert stored.modified_date == BASE_TIME + 5
        assert stored.created_date == BASE_TIME

    def test_provenance_comes_from_stored_row(self, versioning, make_note, queries):
        note = make_note(author="Pedro")
        tampered = _edit(note, body="changed", author="Joan", created_date=1)
        result = versioning.save(note, tampered, "Isa")
        assert result.note.author == "Pedro"
        assert result.note.created_date == BASE_TIME
        assert queries.get_note(note.id).author == "Pedro"

    def test_deletion_state_comes_from_stored_row(
        self, versioning, lifecycle, make_note, queries
    ):
        note = make_note()
        lifecycle.soft_delete(note.id, DeletionType.FINALITZADES, now=BASE_TIME + 10)
        result = versioning.save(note, _edit(note, body="edited in bin"), "Isa")
        assert result.note.is_deleted is True
        assert result.note.deletion_type is DeletionType.FINALITZADES
        assert queries.get_note(note.id).deleted_date == BASE_TIME + 10

    def test_diff_uses_stored_row_not_stale_snapshot(self, versioning, make_note):
        original = make_note()
        versioning.save(original, _edit(original, body="second"), "Pedro")
        result = versioning.save(original, _edit(original, body="third"), "Isa")
        (change,) = result.changes
        assert change.old_value == "second"
        assert change.new_value == "third"


class TestNoOpSave:
    """Saving without changes writes no history and consumes no edition."""

    def test_no_op_save(self, versioning, make_note, queries):
        note = make_note()
        first = versioning.save(note, _edit(note, body="v1"), "Pedro", now=BASE_TIME + 1)
        noop = versioning.save(first.note, first.note.model_copy(), "Isa", now=BASE_TIME + 2)

        assert noop.edition_number is None
        assert noop.changes == ()
        assert noop.created is False
        assert queries.get_edit_history_count(note.id) == 1
        assert queries.get_note(note.id).modified_date == BASE_TIME + 2

        nxt = versioning.save(noop.note, _edit(noop.note, body="v2"), "Pedro")
        assert nxt.edition_number == 2

    def test_whitespace_only_edit_is_a_no_op(self, versioning, make_note):
        note = make_note(name="Call supplier")
        candidate = Note(**{**note.model_dump(), "name": "  Call supplier  "})
        assert versioning.save(note, candidate, "Pedro").edition_number is None


class TestSaveFailures:
    """Validation and storage failures leave the store untouched."""

    def test_unknown_note(self, versioning):
        ghost = Note(id=999, name="n", body="b", category="Notes")
        with pytest.raises(NoteNotFoundError):
            versioning.save(ghost, ghost, "Pedro")

    def test_unsaved_old_snapshot(self, versioning):
        unsaved = Note(name="n", body="b", category="Notes")
        with pytest.raises(NoteValidationError) as exc_info:
            versioning.save(unsaved, unsaved, "Pedro")
        assert exc_info.value.field == "id"

    def test_invalid_candidate_writes_nothing(self, versioning, queries):
        candidate = Note.model_construct(
            name="", body="b", category=Category.NOTES, is_urgent=False
        )
        with pytest.raises(NoteValidationError):
            versioning.save(None, candidate, "Pedro")
        assert queries.list_active_notes() == []

    def test_storage_failure_rolls_back_history(
        self, versioning, make_note, queries, store, monkeypatch
    ):
        note = make_note()

        def failing_update(session, updated):
            raise OperationalError("UPDATE notes", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store.notes, "update_row", failing_update)
        with pytest.raises(StorageError) as exc_info:
            versioning.save(note, _edit(note, body="lost"), "Pedro")

        assert exc_info.value.operation == "save_note"
        assert exc_info.value.code is ErrorCode.STORAGE_WRITE_FAILED
        with store.notes.session_factory() as session:
            rows = session.scalar(select(func.count(DBEditHistory.id)))
        assert rows == 0
        assert queries.get_note(note.id).body == "Ask about the delivery"


class TestEndToEndEditions:
    """Create, edit twice, then read the edition projections."""

    def test_two_editions(self, versioning, make_note, queries):
        t0 = BASE_TIME
        t1 = t0 + MILLIS_PER_DAY
        t2 = t1 + MILLIS_PER_DAY
        note = make_note(name="Call A", body="x", category=Category.TRUCAR, now=t0)

        first = versioning.save(
            note, _edit(note, name="Call B", is_urgent=True), "Isa", now=t1
        )
        second = versioning.save(first.note, _edit(first.note, body="y"), "Pedro", now=t2)

        assert first.edition_number == 1
        assert second.edition_number == 2

        editions = queries.get_editions(note.id)
        assert [e.edition_number for e in editions] == [2, 1]
        assert [e.change_count for e in editions] == [1, 2]
        assert editions[0].timestamp == t2
        assert editions[1].modified_by == "Isa"

        assert queries.get_distinct_modifiers(note.id) == ["Isa", "Pedro"]

        changes = queries.get_changes_for_edition(note.id, 1)
        assert [c.field_name for c in changes] == ["Note Name", "Urgent"]
        assert all(c.timestamp == t1 for c in changes)

        history = queries.get_edit_history(note.id)
        assert [e.edition_number for e in history] == [2, 1, 1]
