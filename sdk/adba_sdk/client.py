"""
ADBA Client for Python SDK.

This module provides the main client interface:
- AdbaClient: Async HTTP client for one ADBA server
- DatabaseInfo: A tenant database as reported by the server
- Session: An attached client session

Example:
    >>> async with AdbaClient("http://192.168.1.20:8080", pairing_code="A1B2C3") as db:
    ...     await db.create_database("orders", client_app="shop")
    ...     await db.query("orders", "CREATE TABLE t (id INTEGER PRIMARY KEY, v TEXT)")
    ...     rows = await db.query("orders", "SELECT * FROM t")

Invariants:
    - Every server response is an envelope {success, data, error}
    - Non-success envelopes are raised as AdbaClientError subclasses
    - The pairing code is only sent to gated endpoints
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from .errors import (
    AdbaClientError,
    ConnectionError,
    NotFoundError,
    PairingError,
    RequestError,
    ServerError,
)

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    """Percent-encode one path segment, including any / or ?."""
    return quote(value, safe="")


@dataclass
class DatabaseInfo:
    """A tenant database.

    Attributes:
        id: Unique identifier
        name: Database name
        client_app: Owning client label
        created_at: Creation timestamp (Unix ms)
        size_bytes: File size when listed
        tables_count: Number of tables when listed
        status: Active, Syncing, Offline or Error
    """

    id: str
    name: str
    client_app: str
    created_at: int
    size_bytes: int
    tables_count: int
    status: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseInfo:
        return cls(
            id=data["id"],
            name=data["name"],
            client_app=data["client_app"],
            created_at=data["created_at"],
            size_bytes=data.get("size_bytes", 0),
            tables_count=data.get("tables_count", 0),
            status=data.get("status", "Active"),
        )


@dataclass
class Session:
    """An attached client session."""

    id: str
    client_app: str
    database: str
    connected_at: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            id=data["id"],
            client_app=data["client_app"],
            database=data["database"],
            connected_at=data["connected_at"],
        )


class AdbaClient:
    """Async client for the ADBA REST API.

    Attributes:
        base_url: Server URL, e.g. http://192.168.1.20:8080
        pairing_code: Code used for gated calls unless one is passed explicitly
        client_app: Label sent when creating databases and attaching
    """

    def __init__(
        self,
        base_url: str,
        pairing_code: str | None = None,
        client_app: str = "unknown",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.pairing_code = pairing_code
        self.client_app = client_app
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> AdbaClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        resource_id: str = "",
    ) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise ConnectionError(f"Request to {path} timed out: {e}", self.base_url) from e
        except httpx.TransportError as e:
            raise ConnectionError(f"Cannot reach ADBA server: {e}", self.base_url) from e

        try:
            envelope = response.json()
        except ValueError:
            envelope = None
        if not isinstance(envelope, dict):
            raise ConnectionError(
                f"Unexpected response from {path} (HTTP {response.status_code})",
                self.base_url,
            )

        if response.is_success and envelope.get("success"):
            return envelope.get("data")

        message = envelope.get("error") or f"HTTP {response.status_code}"
        status = response.status_code
        logger.debug(f"{method} {path} failed with {status}: {message}")
        if status == 401:
            raise PairingError(message)
        if status == 404:
            raise NotFoundError(message, resource_id)
        if status == 400:
            raise RequestError(message)
        if status >= 500:
            raise ServerError(message, status)
        raise AdbaClientError(message, status=status)

    def _code(self, pairing_code: str | None) -> str:
        code = pairing_code or self.pairing_code
        if not code:
            raise PairingError("No pairing code configured")
        return code

    # ---------------------------------------------------------------- server

    async def status(self) -> dict[str, Any]:
        return await self._request("GET", "/api/status")

    async def info(self) -> dict[str, Any]:
        return await self._request("GET", "/api/info")

    # ------------------------------------------------------------- databases

    async def list_databases(self) -> list[DatabaseInfo]:
        data = await self._request("GET", "/api/databases")
        return [DatabaseInfo.from_dict(item) for item in data]

    async def get_database(self, name: str) -> DatabaseInfo | None:
        """Fetch one database, or None if it does not exist."""
        try:
            data = await self._request(
                "GET", f"/api/databases/{_segment(name)}", resource_id=name
            )
        except NotFoundError:
            return None
        return DatabaseInfo.from_dict(data)

    async def create_database(self, name: str, client_app: str | None = None) -> DatabaseInfo:
        data = await self._request(
            "POST",
            "/api/databases",
            json={"name": name, "client_app": client_app or self.client_app},
        )
        return DatabaseInfo.from_dict(data)

    async def delete_database(self, name: str) -> None:
        await self._request("DELETE", f"/api/databases/{_segment(name)}", resource_id=name)

    async def query(
        self,
        database: str,
        statement: str,
        pairing_code: str | None = None,
    ) -> list[dict[str, Any]] | dict[str, Any]:
        """Run a statement.

        Returns:
            Rows for SELECT statements, otherwise {"affected_rows": n}
        """
        return await self._request(
            "POST",
            "/api/query",
            json={
                "database": database,
                "query": statement,
                "pairing_code": self._code(pairing_code),
            },
        )

    # --------------------------------------------------------------- pairing

    async def pair(self, pairing_code: str | None = None) -> bool:
        """Check a code; on success it becomes this client's code."""
        code = self._code(pairing_code)
        data = await self._request("POST", "/api/pair", json={"pairing_code": code})
        valid = bool(data.get("valid"))
        if valid:
            self.pairing_code = code
        return valid

    async def get_pairing_code(self) -> str:
        data = await self._request("GET", "/api/pairing-code")
        return data["pairing_code"]

    async def rotate_pairing_code(self) -> str:
        data = await self._request("POST", "/api/pairing-code")
        return data["pairing_code"]

    # -------------------------------------------------------------- sessions

    async def list_sessions(self) -> list[Session]:
        data = await self._request("GET", "/api/sessions")
        return [Session.from_dict(item) for item in data]

    async def attach(self, database: str, pairing_code: str | None = None) -> Session:
        data = await self._request(
            "POST",
            "/api/sessions",
            json={
                "database": database,
                "client_app": self.client_app,
                "pairing_code": self._code(pairing_code),
            },
        )
        return Session.from_dict(data)

    async def detach(self, session_id: str) -> bool:
        data = await self._request("DELETE", f"/api/sessions/{_segment(session_id)}")
        return bool(data.get("removed"))
