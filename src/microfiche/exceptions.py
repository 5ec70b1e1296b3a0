"""Custom exceptions for Microfiche.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Hierarchy errors (1xxx)
    PATH_INVALID = 1001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_CONNECTION_FAILED = 4004

    # Parse errors (45xx)
    PARSE_HEADER_INVALID = 4501
    PARSE_ROW_INVALID = 4502

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    FIELD_REQUIRED = 7002


class MicroficheError(Exception):
    """Base exception for all Microfiche errors.

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


class InvalidPathError(MicroficheError):
    """Raised when a path does not have one name per hierarchy level.

    This is a caller contract violation: the store never guesses which
    level a short or long path was meant to address.
    """

    def __init__(self, path: Any, expected_depth: int, message: Optional[str] = None):
        if isinstance(path, (str, bytes)) or not isinstance(path, Sequence):
            actual = "not a sequence"
        else:
            actual = str(len(path))
        super().__init__(
            message or f"Path must have {expected_depth} segments, got {actual}",
            code=ErrorCode.PATH_INVALID,
            details={"expected_depth": expected_depth, "actual": actual}
        )
        self.path = path
        self.expected_depth = expected_depth


class ParseError(MicroficheError):
    """Raised when a persisted row or header is malformed.

    A parse error aborts the whole load; nothing is imported.
    """

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.PARSE_ROW_INVALID
    ):
        details: Dict[str, Any] = {}
        if line is not None:
            details["line"] = line
        if path:
            details["path_hint"] = path.split("/")[-1] if "/" in path else path

        super().__init__(message, code=code, details=details)
        self.line = line
        self.path = path


class StorageError(MicroficheError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ValidationError(MicroficheError):
    """Raised when user input is rejected at the service boundary."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
