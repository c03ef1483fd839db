"""Async boundary over NoteService.

Every call suspends the awaiting task while a worker thread talks to the
store, and comes back as an ``OperationResult`` instead of raising.
"""

import functools
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import anyio

from avisos.exceptions import (AvisosError, NoteValidationError, StorageError,
                               ValidationError)
from avisos.services.note_service import NoteService

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of an async operation.

    Attributes:
        success: Whether the operation completed.
        message: Human-readable summary, always set on failure.
        error_code: Name of the ErrorCode on failure.
        field: Offending input field for validation failures.
        value: The operation's return value on success.
    """

    success: bool
    message: str = ""
    error_code: Optional[str] = None
    field: Optional[str] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> "OperationResult":
        return cls(success=True, message=message, value=value)

    @classmethod
    def from_error(cls, error: AvisosError) -> "OperationResult":
        """Failure result for ``error``.

        Storage failures append the database driver's message.
        """
        field = None
        if isinstance(error, (NoteValidationError, ValidationError)):
            field = error.field
        message = error.message
        if isinstance(error, StorageError) and error.original_error is not None:
            cause = getattr(error.original_error, "orig", None) or error.original_error
            message = f"{message}: {cause}"
        return cls(
            success=False,
            message=message,
            error_code=error.code.name,
            field=field,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error_code": self.error_code,
            "field": self.field,
        }


class AsyncNoteService:
    """Coroutine facade for editors and list screens."""

    def __init__(self, service: NoteService):
        self.service = service

    async def _call(
        self, operation: str, func: Callable[..., Any], *args, **kwargs
    ) -> OperationResult:
        try:
            value = await anyio.to_thread.run_sync(
                functools.partial(func, *args, **kwargs)
            )
        except AvisosError as e:
            logger.warning(f"{operation} failed: {e}")
            return OperationResult.from_error(e)
        except Exception as e:
            reference = uuid.uuid4().hex[:8]
            logger.error(
                f"Unexpected error in {operation} [ref {reference}]: {e}",
                exc_info=True,
            )
            return OperationResult(
                success=False,
                message=f"Unexpected error during {operation} (reference {reference})",
                error_code="INTERNAL_ERROR",
            )
        return OperationResult.ok(value)

    # ========== Writes ==========

    async def create_note(self, **fields) -> OperationResult:
        return await self._call("create_note", self.service.create_note, **fields)

    async def save_note(self, old, candidate, now: Optional[int] = None) -> OperationResult:
        return await self._call(
            "save_note", self.service.save_note, old, candidate, now=now
        )

    async def update_note(self, note_id: int, **changes) -> OperationResult:
        return await self._call(
            "update_note", self.service.update_note, note_id, **changes
        )

    async def soft_delete(
        self, note_id: int, deletion_type, now: Optional[int] = None
    ) -> OperationResult:
        return await self._call(
            "soft_delete", self.service.soft_delete, note_id, deletion_type, now=now
        )

    async def restore(self, note_id: int) -> OperationResult:
        return await self._call("restore", self.service.restore, note_id)

    async def permanently_delete(self, note_id: int) -> OperationResult:
        return await self._call(
            "permanently_delete", self.service.permanently_delete, note_id
        )

    async def purge_expired(
        self, retention_days: Optional[int] = None, now: Optional[int] = None
    ) -> OperationResult:
        return await self._call(
            "purge_expired", self.service.purge_expired, retention_days, now=now
        )

    async def empty_recycle_bin(self, deletion_type=None) -> OperationResult:
        return await self._call(
            "empty_recycle_bin", self.service.empty_recycle_bin, deletion_type
        )

    # ========== Reads ==========

    async def get_note(self, note_id: int) -> OperationResult:
        return await self._call("get_note", self.service.queries.get_note, note_id)

    async def list_active_notes(self, category=None, subcategory=None) -> OperationResult:
        return await self._call(
            "list_active_notes",
            self.service.queries.list_active_notes,
            category,
            subcategory,
        )

    async def count_active_per_category(self) -> OperationResult:
        return await self._call(
            "count_active_per_category",
            self.service.queries.count_active_per_category,
        )

    async def list_deleted_notes(self, deletion_type=None) -> OperationResult:
        return await self._call(
            "list_deleted_notes", self.service.queries.list_deleted_notes, deletion_type
        )

    async def get_edit_history(self, note_id: int) -> OperationResult:
        return await self._call(
            "get_edit_history", self.service.queries.get_edit_history, note_id
        )

    async def get_editions(self, note_id: int) -> OperationResult:
        return await self._call(
            "get_editions", self.service.queries.get_editions, note_id
        )

    async def get_changes_for_edition(
        self, note_id: int, edition_number: int
    ) -> OperationResult:
        return await self._call(
            "get_changes_for_edition",
            self.service.queries.get_changes_for_edition,
            note_id,
            edition_number,
        )
