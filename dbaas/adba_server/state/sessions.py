"""
In-memory registry of attached client sessions.

Invariants:
    - Sessions live only in memory and are lost on restart
    - add/remove/snapshot hold one lock, so concurrent callers never lose entries
    - Session ids are not checked for uniqueness; callers use fresh UUIDs
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class ConnectionSession:
    """A client attached to a tenant database.

    Attributes:
        id: Session identifier
        client_app: Client label
        database: Database name the client works with
        connected_at: Attach timestamp (Unix ms)
    """

    id: str
    client_app: str
    database: str
    connected_at: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SessionRegistry:
    """Thread-safe list of active sessions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: list[ConnectionSession] = []

    def add(self, session: ConnectionSession) -> None:
        with self._lock:
            self._sessions.append(session)

    def remove(self, session_id: str) -> bool:
        """Remove every session with this id. Unknown ids are ignored."""
        with self._lock:
            before = len(self._sessions)
            self._sessions = [s for s in self._sessions if s.id != session_id]
            return len(self._sessions) != before

    def snapshot(self) -> list[ConnectionSession]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
