"""Custom exceptions for the Scratchpad MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_CATEGORY_REQUIRED = 1004
    NOTE_CONTENT_REQUIRED = 1005
    NOTE_INVALID_ID = 1006

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    STORAGE_TIMEOUT = 4008

    # Search errors (5xxx)
    SEARCH_FAILED = 5001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INPUT_TOO_LONG = 7006


class ScratchpadError(Exception):
    """Base exception for all Scratchpad errors.

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


class ValidationError(ScratchpadError):
    """Raised when input fails validation (empty category, empty content...)."""

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
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class InvalidIdentifierError(ScratchpadError):
    """Raised when a note ID is not a well-formed handle."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Invalid note ID: '{str(note_id)[:64]}'",
            code=ErrorCode.NOTE_INVALID_ID,
            details={"note_id": str(note_id)[:64]}
        )
        self.note_id = note_id


class NoteNotFoundError(ScratchpadError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id}
        )
        self.note_id = note_id


class StorageError(ScratchpadError):
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


class StoreUnavailableError(StorageError):
    """Raised when the backing store cannot be reached in time.

    Covers a locked database past the busy timeout, an exhausted
    connection pool and an unreachable database file.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_CONNECTION_FAILED,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation=operation,
            code=code,
            original_error=original_error
        )


class SearchError(ScratchpadError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query

