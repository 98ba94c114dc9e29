"""previewhub error system.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages
- A coarse `kind` used by the HTTP and socket layers to pick a response

The four kinds mirror how callers react:
    not_found         - unknown workspace/process/file (recoverable)
    invalid_argument  - missing field, bad identifier, path escape (recoverable)
    storage           - filesystem I/O failure (logged)
    spawn             - process could not be created (logged)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Workspace errors
        2xxx - File errors
        3xxx - Process errors
        4xxx - Validation errors
        5xxx - Storage errors
    """

    # 1xxx - Workspace Errors
    WORKSPACE_NOT_FOUND = 1001
    WORKSPACE_ID_INVALID = 1002

    # 2xxx - File Errors
    FILE_NOT_FOUND = 2001
    DIRECTORY_NOT_FOUND = 2002
    DIRECTORY_NOT_EMPTY = 2003
    PATH_ESCAPES_WORKSPACE = 2004

    # 3xxx - Process Errors
    SPAWN_FAILED = 3002
    COMMAND_NOT_FOUND = 3003

    # 4xxx - Validation Errors
    MISSING_FIELD = 4001
    INVALID_VALUE = 4002
    CONFIG_INVALID = 4004

    # 5xxx - Storage Errors
    STORAGE_FAILED = 5001

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "workspace",
            2: "file",
            3: "process",
            4: "validation",
            5: "storage",
        }.get(prefix, "unknown")


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.WORKSPACE_NOT_FOUND: "Workspace '{workspace}' not found",
    ErrorCode.WORKSPACE_ID_INVALID: "Invalid workspace id '{workspace}': {detail}",
    ErrorCode.FILE_NOT_FOUND: "File not found: {path}",
    ErrorCode.DIRECTORY_NOT_FOUND: "Directory not found: {path}",
    ErrorCode.DIRECTORY_NOT_EMPTY: "Directory not empty: {path} (pass recursive to remove it)",
    ErrorCode.PATH_ESCAPES_WORKSPACE: "Path escapes workspace: {path}",
    ErrorCode.SPAWN_FAILED: "Failed to start '{command}': {detail}",
    ErrorCode.COMMAND_NOT_FOUND: "Command not found: {command}",
    ErrorCode.MISSING_FIELD: "Missing required parameter: {field}",
    ErrorCode.INVALID_VALUE: "Invalid value for '{field}': {detail}",
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
    ErrorCode.STORAGE_FAILED: "Storage operation '{operation}' failed for {path}: {detail}",
}


class HubError(Exception):
    """Base error type for all previewhub errors.

    Example:
        >>> err = NotFound(ErrorCode.FILE_NOT_FOUND, context={"path": "index.html"})
        >>> print(err)
        [PH-2001] File not found: index.html
        >>> err.kind
        'not_found'
    """

    kind = "internal"

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def category(self) -> str:
        """Get the error category."""
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'PH-2001')."""
        return f"PH-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging/API responses."""
        return {
            "error": self.message,
            "errorId": self.error_id,
            "code": self.code.value,
            "kind": self.kind,
            "category": self.category,
        }


class NotFound(HubError):
    """Unknown workspace, process or file."""

    kind = "not_found"


class InvalidArgument(HubError):
    """Missing or malformed input."""

    kind = "invalid_argument"


class StorageError(HubError):
    """Filesystem I/O failure."""

    kind = "storage"


class SpawnError(HubError):
    """A child process could not be created."""

    kind = "spawn"


# Convenience factory functions


def workspace_not_found(workspace: str) -> NotFound:
    """Create a WORKSPACE_NOT_FOUND error."""
    return NotFound(ErrorCode.WORKSPACE_NOT_FOUND, context={"workspace": workspace})


def invalid_workspace_id(workspace: str, detail: str) -> InvalidArgument:
    """Create a WORKSPACE_ID_INVALID error."""
    return InvalidArgument(
        ErrorCode.WORKSPACE_ID_INVALID,
        context={"workspace": workspace, "detail": detail},
    )


def file_error(
    code: ErrorCode,
    path: str,
    cause: Exception | None = None,
) -> HubError:
    """Create a file-related error with the kind implied by the code."""
    if code in (ErrorCode.FILE_NOT_FOUND, ErrorCode.DIRECTORY_NOT_FOUND):
        return NotFound(code, context={"path": path}, cause=cause)
    return InvalidArgument(code, context={"path": path}, cause=cause)


def storage_error(operation: str, path: str, cause: Exception) -> StorageError:
    """Create a STORAGE_FAILED error wrapping an OSError."""
    return StorageError(
        ErrorCode.STORAGE_FAILED,
        context={"operation": operation, "path": path, "detail": str(cause)},
        cause=cause,
    )


def spawn_error(
    command: str,
    cause: Exception,
    process_id: str | None = None,
) -> SpawnError:
    """Create a SPAWN_FAILED (or COMMAND_NOT_FOUND) error."""
    code = ErrorCode.COMMAND_NOT_FOUND if isinstance(cause, FileNotFoundError) else ErrorCode.SPAWN_FAILED
    return SpawnError(
        code,
        context={"command": command, "detail": str(cause), "process_id": process_id},
        cause=cause,
    )


def missing_field(field: str) -> InvalidArgument:
    """Create a MISSING_FIELD error."""
    return InvalidArgument(ErrorCode.MISSING_FIELD, context={"field": field})


def invalid_value(field: str, detail: str) -> InvalidArgument:
    """Create an INVALID_VALUE error."""
    return InvalidArgument(ErrorCode.INVALID_VALUE, context={"field": field, "detail": detail})


def config_error(key: str, detail: str) -> InvalidArgument:
    """Create a CONFIG_INVALID error."""
    return InvalidArgument(ErrorCode.CONFIG_INVALID, context={"key": key, "detail": detail})
