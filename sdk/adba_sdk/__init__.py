"""
ADBA Python SDK - Client library for an ADBA database server.

Example:
    >>> from adba_sdk import AdbaClient
    >>>
    >>> async with AdbaClient("http://192.168.1.20:8080", client_app="shop") as db:
    ...     if await db.pair("A1B2C3"):
    ...         await db.create_database("orders")
    ...         rows = await db.query("orders", "SELECT 1")

Invariants:
    - Gated calls (query, attach) need the pairing code shown on the server
    - A rotated code makes every gated call raise PairingError
"""

__version__ = "0.1.0"

from .client import AdbaClient, DatabaseInfo, Session
from .errors import (
    AdbaClientError,
    ConnectionError,
    NotFoundError,
    PairingError,
    RequestError,
    ServerError,
)

__all__ = [
    "AdbaClient",
    "DatabaseInfo",
    "Session",
    "AdbaClientError",
    "ConnectionError",
    "NotFoundError",
    "PairingError",
    "RequestError",
    "ServerError",
]
