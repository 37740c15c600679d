"""
Shared application state for ADBA Server.

AppState is created once at startup and handed to every HTTP handler.
It owns:
- the tenant engine
- the pairing code
- the actually bound listening port
- the session registry

Invariants:
    - There is no module-level state; everything hangs off one AppState
    - Port reads always see the latest value set by the transport
    - Status snapshots never fail because of network discovery

How to change safely:
    - Add new shared fields with their own lock or as immutable values
    - Keep snapshots read-only; mutation goes through explicit methods
"""

from __future__ import annotations

import logging
import socket
import threading
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from ..errors import StorageUnavailableError
from ..store.engine import TenantEngine, now_ms
from .pairing import PairingSecret
from .sessions import ConnectionSession, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
FALLBACK_HOST = "127.0.0.1"


def get_local_ip(probe: tuple[str, int] = ("8.8.8.8", 80)) -> str | None:
    """LAN address of the interface that routes to the outside world.

    Connecting a UDP socket sends nothing; it only selects a route.
    Returns None when there is no route.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(probe)
            return sock.getsockname()[0]
    except OSError:
        return None


@dataclass
class ServerStatus:
    running: bool
    port: int
    databases_count: int
    active_connections: int
    pairing_code: str
    local_ip: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ConnectionInfo:
    host: str
    port: int
    pairing_code: str
    connection_string: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_connection_string(host: str, port: int, pairing_code: str) -> str:
    return f"http://{host}:{port}/api?pairing_code={pairing_code}"


class AppState:
    """State shared by all request handlers.

    Attributes:
        engine: Tenant database engine
        pairing: Current pairing code
        sessions: Attached client sessions
    """

    def __init__(
        self,
        engine: TenantEngine,
        pairing: PairingSecret | None = None,
        sessions: SessionRegistry | None = None,
        port: int = DEFAULT_PORT,
        local_ip_resolver: Callable[[], str | None] = get_local_ip,
    ) -> None:
        self.engine = engine
        self.pairing = pairing or PairingSecret()
        self.sessions = sessions or SessionRegistry()
        self._port = port
        self._port_lock = threading.Lock()
        self._local_ip_resolver = local_ip_resolver

    @property
    def port(self) -> int:
        with self._port_lock:
            return self._port

    def set_port(self, port: int) -> None:
        """Record the port the transport actually bound."""
        with self._port_lock:
            self._port = port

    def local_ip(self) -> str | None:
        try:
            return self._local_ip_resolver()
        except Exception as e:
            logger.debug(f"Local IP discovery failed: {e}")
            return None

    # --------------------------------------------------------------- pairing

    def pairing_code(self) -> str:
        return self.pairing.current()

    def rotate_pairing_code(self) -> str:
        code = self.pairing.rotate()
        logger.info("Pairing code rotated")
        return code

    def validate_pairing_code(self, candidate: str | None) -> bool:
        return self.pairing.validate(candidate)

    # -------------------------------------------------------------- sessions

    def attach(self, client_app: str, database: str) -> ConnectionSession:
        """Register a new session for a client."""
        session = ConnectionSession(
            id=str(uuid.uuid4()),
            client_app=client_app,
            database=database,
            connected_at=now_ms(),
        )
        self.sessions.add(session)
        logger.info(
            "Client attached",
            extra={"session_id": session.id, "client_app": client_app, "database": database},
        )
        return session

    def detach(self, session_id: str) -> bool:
        removed = self.sessions.remove(session_id)
        if removed:
            logger.info("Client detached", extra={"session_id": session_id})
        return removed

    # ------------------------------------------------------------- snapshots

    async def status_snapshot(self) -> ServerStatus:
        try:
            databases_count = await self.engine.count()
        except StorageUnavailableError as e:
            logger.warning(f"Catalog unavailable for status: {e}")
            databases_count = 0

        return ServerStatus(
            running=True,
            port=self.port,
            databases_count=databases_count,
            active_connections=len(self.sessions),
            pairing_code=self.pairing.current(),
            local_ip=self.local_ip(),
        )

    def connection_info_snapshot(self) -> ConnectionInfo:
        host = self.local_ip() or FALLBACK_HOST
        port = self.port
        code = self.pairing.current()
        return ConnectionInfo(
            host=host,
            port=port,
            pairing_code=code,
            connection_string=build_connection_string(host, port, code),
        )
