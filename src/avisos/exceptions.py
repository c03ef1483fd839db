"""Custom exceptions for avisos.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_NAME_REQUIRED = 1004
    NOTE_BODY_REQUIRED = 1005
    INVALID_CATEGORY = 1006
    INVALID_SUBCATEGORY = 1007

    # Lifecycle errors (2xxx)
    INVALID_DELETION_TYPE = 2001
    SWEEP_FAILED = 2002

    # Identity errors (3xxx)
    UNKNOWN_USER = 3001
    NO_ACTIVE_USER = 3002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class AvisosError(Exception):
    """Base exception for all avisos errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(AvisosError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class NoteValidationError(AvisosError):
    """Raised when note data fails validation.

    ``field`` names the offending input so the editor can highlight it.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(AvisosError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class SweepError(AvisosError):
    """Raised when the recycle-bin expiry sweep cannot complete."""

    def __init__(
        self,
        message: str,
        retention_days: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if retention_days is not None:
            details["retention_days"] = retention_days
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.SWEEP_FAILED, details=details)
        self.retention_days = retention_days
        self.original_error = original_error


class IdentityError(AvisosError):
    """Raised when no valid acting user is available."""

    def __init__(
        self,
        message: str,
        username: Optional[str] = None,
        code: ErrorCode = ErrorCode.UNKNOWN_USER
    ):
        details = {}
        if username:
            details["username"] = username

        super().__init__(message, code=code, details=details)
        self.username = username


class ValidationError(AvisosError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
