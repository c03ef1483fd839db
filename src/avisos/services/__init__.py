"""Service layer for avisos."""

from avisos.services.async_service import AsyncNoteService, OperationResult
from avisos.services.lifecycle import DeletionLifecycleManager
from avisos.services.note_service import NoteService
from avisos.services.query_service import NoteQueryService
from avisos.services.sweeper import CleanupExpiredNotesJob, SweepOutcome, SweepScheduler
from avisos.services.versioning import (VersioningEngine, build_note, diff_notes,
                                       validate_input)

__all__ = [
    "AsyncNoteService",
    "OperationResult",
    "DeletionLifecycleManager",
    "NoteService",
    "NoteQueryService",
    "CleanupExpiredNotesJob",
    "SweepOutcome",
    "SweepScheduler",
    "VersioningEngine",
    "build_note",
    "diff_notes",
    "validate_input",
]
