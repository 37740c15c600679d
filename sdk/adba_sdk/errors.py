"""
Error types for the ADBA SDK.

This module defines all exception types raised by the SDK:
- AdbaClientError: Base exception
- ConnectionError: Server unreachable or timed out
- PairingError: Pairing code rejected (HTTP 401)
- NotFoundError: Database does not exist (HTTP 404)
- RequestError: Server rejected the request (HTTP 400)
- ServerError: Server failed (HTTP 5xx)

Invariants:
    - All errors inherit from AdbaClientError
    - The server's error text is kept as the message
    - status carries the HTTP status when there was a response
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AdbaClientError(Exception):
    """Base exception for all ADBA SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        status: HTTP status, if a response was received
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ADBA_ERROR"
        self.status = status
        self.details = details or {}


class ConnectionError(AdbaClientError):
    """Failed to reach the ADBA server.

    Raised when:
    - Server is unreachable
    - Connection times out
    - Response is not the expected JSON envelope
    """

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"address": address},
        )
        self.address = address


class PairingError(AdbaClientError):
    """Pairing code was rejected.

    Raised when:
    - The code was mistyped
    - The code was rotated on the server since it was entered
    """

    def __init__(self, message: str = "Invalid pairing code") -> None:
        super().__init__(message, code="AUTH_FAILED", status=401)


class NotFoundError(AdbaClientError):
    """Database not found."""

    def __init__(self, message: str, resource_id: str) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            status=404,
            details={"resource_id": resource_id},
        )
        self.resource_id = resource_id


class RequestError(AdbaClientError):
    """Server rejected the request.

    Raised when:
    - Database name is invalid or already taken
    - Statement failed to prepare or execute
    - Request body is malformed
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="BAD_REQUEST", status=400)


class ServerError(AdbaClientError):
    """Server-side failure (storage unavailable, unexpected error)."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message, code="SERVER_ERROR", status=status)
