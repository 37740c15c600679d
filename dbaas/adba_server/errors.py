"""
Error types for ADBA Server.

Every failure a request can hit is an AdbaError subclass carrying:
- code: stable machine-readable identifier
- http_status: status the HTTP layer answers with

Invariants:
    - All request-level errors inherit from AdbaError
    - Messages keep the underlying SQLite/OS diagnostic text
    - Only catalog initialization failure at startup is fatal to the process

How to change safely:
    - Never change an existing code string; clients branch on it
    - Add new error types as subclasses with their own code
"""

from __future__ import annotations

from typing import Any


class AdbaError(Exception):
    """Base exception for all ADBA server errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        http_status: HTTP status returned for this error
        details: Additional error context
    """

    code = "ADBA_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StorageUnavailableError(AdbaError):
    """Catalog or tenant file could not be opened, read or written."""

    code = "STORAGE_UNAVAILABLE"
    http_status = 500


class DuplicateNameError(AdbaError):
    """A database with this name (or the same sanitized name) already exists."""

    code = "DUPLICATE_NAME"
    http_status = 400

    def __init__(self, name: str, file_key: str | None = None) -> None:
        super().__init__(
            f"Database already exists: {name}",
            details={"name": name, "file_key": file_key},
        )
        self.name = name
        self.file_key = file_key


class InvalidNameError(AdbaError):
    """Database name has no usable characters after sanitizing."""

    code = "INVALID_NAME"
    http_status = 400

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Invalid database name: {name!r} (use letters, digits or underscore)",
            details={"name": name},
        )
        self.name = name


class DatabaseNotFoundError(AdbaError):
    """No catalog entry for the requested database."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, name: str) -> None:
        super().__init__("Database not found", details={"name": name})
        self.name = name


class QueryFailedError(AdbaError):
    """Statement could not be prepared or executed."""

    code = "QUERY_FAILED"
    http_status = 400


class AuthFailedError(AdbaError):
    """Presented pairing code does not match the current one."""

    code = "AUTH_FAILED"
    http_status = 401

    def __init__(self, message: str = "Invalid pairing code") -> None:
        super().__init__(message)


class InvalidRequestError(AdbaError):
    """Request body is missing, not JSON, or lacks a required field."""

    code = "INVALID_REQUEST"
    http_status = 400
