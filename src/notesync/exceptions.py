"""Custom exceptions for notesync.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    SCHEMA_MIGRATION_FAILED = 4005

    # Bulk operation errors (45xx)
    BULK_OPERATION_FAILED = 4501

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001

    # Sync errors (8xxx)
    SYNC_OFFLINE = 8001
    SYNC_REMOTE_FAILED = 8002
    SYNC_INVALID_RESPONSE = 8003


class NotesyncError(Exception):
    """Base exception for all notesync errors.

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


class StorageError(NotesyncError):
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


class BulkOperationError(StorageError):
    """Raised when a bulk insert is rolled back.

    Attributes:
        operation: Name of the bulk operation
        total_count: Number of items in the rejected batch
        failed_index: Position of the item whose insert failed, if known
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        failed_index: Optional[int] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_FAILED,
        original_error: Optional[Exception] = None
    ):
        if total_count < 0:
            raise ValueError("total_count must be non-negative")

        super().__init__(
            message,
            operation=operation,
            code=code,
            original_error=original_error,
        )
        self.total_count = total_count
        self.failed_index = failed_index
        self.details["total_count"] = total_count
        if failed_index is not None:
            self.details["failed_index"] = failed_index


class SyncError(NotesyncError):
    """Raised for remote sync errors.

    Attributes:
        operation: The sync step that failed
        status_code: HTTP status returned by the remote, if any
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        code: ErrorCode = ErrorCode.SYNC_REMOTE_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.status_code = status_code
        self.original_error = original_error

    @property
    def offline(self) -> bool:
        """True when the remote could not be reached at all."""
        return self.code == ErrorCode.SYNC_OFFLINE


class ConfigurationError(NotesyncError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(NotesyncError):
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


def failed_ids_preview(ids: List[int], limit: int = 10) -> List[int]:
    """Truncate an id list for safe inclusion in error details and logs."""
    return list(ids[:limit])
