"""Service layer for note operations."""

import logging
from typing import Any, Dict, Optional, Union

from avisos.exceptions import NoteNotFoundError
from avisos.identity import UserSession
from avisos.models.schema import Category, DeletionType, Note, SaveResult
from avisos.observability import traced
from avisos.services.lifecycle import DeletionLifecycleManager
from avisos.services.query_service import NoteQueryService
from avisos.services.versioning import (VersioningEngine, build_note,
                                       coerce_category, validate_input)
from avisos.storage.store import NoteStore

logger = logging.getLogger(__name__)

# Distinguishes "leave unchanged" from an explicit None in update_note
_UNSET: Any = object()


class NoteService:
    """Entry point for editing notes, moving them through the recycle bin
    and reading projections.

    The acting user comes from ``session``; every write that records an
    author or modifier requires one to be selected.
    """

    def __init__(
        self,
        store: NoteStore,
        session: Optional[UserSession] = None,
        retention_days: Optional[int] = None,
    ):
        self.store = store
        self.session = session or UserSession()
        self.versioning = VersioningEngine(store)
        self.lifecycle = DeletionLifecycleManager(store, retention_days)
        self.queries = NoteQueryService(store)

    # ========== Editing ==========

    @traced("create_note")
    def create_note(
        self,
        name: str,
        body: str,
        category: Union[Category, str],
        subcategory: Optional[str] = None,
        contact: Optional[str] = None,
        is_urgent: bool = False,
        now: Optional[int] = None,
    ) -> Note:
        """Create a new note authored by the acting user.

        Raises:
            NoteValidationError: Empty name/body or an invalid category route.
            IdentityError: No acting user selected.
        """
        validate_input(name, body)
        author = self.session.require_user()
        candidate = build_note(
            name=name,
            body=body,
            category=category,
            subcategory=subcategory,
            contact=contact,
            is_urgent=is_urgent,
            author=author,
        )
        return self.versioning.save(None, candidate, author, now=now).note

    @traced("save_note")
    def save_note(
        self, old: Optional[Note], candidate: Note, now: Optional[int] = None
    ) -> SaveResult:
        """Persist an editor snapshot, recording changes against ``old``."""
        return self.versioning.save(
            old, candidate, self.session.require_user(), now=now
        )

    def update_note(
        self,
        note_id: int,
        name: Optional[str] = None,
        body: Optional[str] = None,
        category: Optional[Union[Category, str]] = None,
        subcategory: Optional[str] = _UNSET,
        contact: Optional[str] = _UNSET,
        is_urgent: Optional[bool] = None,
        now: Optional[int] = None,
    ) -> SaveResult:
        """Apply partial changes to a stored note as one edition.

        Omitted arguments keep their stored values. Pass ``contact=None`` or
        ``subcategory=None`` to clear them. Changing the category without
        passing ``subcategory`` clears the stored one.
        """
        if category is not None:
            category = coerce_category(category)
        old = self.store.notes.get(note_id)
        if old is None:
            raise NoteNotFoundError(note_id)

        fields: Dict[str, Any] = old.model_dump()
        if name is not None:
            fields["name"] = name
        if body is not None:
            fields["body"] = body
        if category is not None:
            fields["category"] = category
        if contact is not _UNSET:
            fields["contact"] = contact
        if is_urgent is not None:
            fields["is_urgent"] = is_urgent
        if subcategory is not _UNSET:
            fields["subcategory"] = subcategory
        elif category is not None and category != old.category:
            fields["subcategory"] = None

        validate_input(fields["name"], fields["body"])
        candidate = build_note(**fields)
        return self.save_note(old, candidate, now=now)

    def get_note(self, note_id: int) -> Optional[Note]:
        return self.queries.get_note(note_id)

    # ========== Recycle bin ==========

    @traced("soft_delete")
    def soft_delete(
        self,
        note_id: int,
        deletion_type: Union[DeletionType, str],
        now: Optional[int] = None,
    ) -> Note:
        return self.lifecycle.soft_delete(note_id, deletion_type, now=now)

    @traced("restore")
    def restore(self, note_id: int) -> Note:
        return self.lifecycle.restore(note_id)

    @traced("permanently_delete")
    def permanently_delete(self, note_id: int) -> None:
        self.lifecycle.permanently_delete(note_id)

    def purge_expired(
        self, retention_days: Optional[int] = None, now: Optional[int] = None
    ) -> int:
        return self.lifecycle.purge_expired(retention_days, now=now)

    @traced("empty_recycle_bin")
    def empty_recycle_bin(
        self, deletion_type: Union[DeletionType, str, None] = None
    ) -> int:
        return self.lifecycle.empty_recycle_bin(deletion_type)

    def days_until_purge(self, note: Note, now: Optional[int] = None) -> Optional[int]:
        return self.lifecycle.days_until_purge(note, now=now)
