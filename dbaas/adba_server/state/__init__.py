"""
Process-wide state for ADBA Server: pairing code, bound port, sessions.

Invariants:
    - State is owned by one AppState instance and injected into handlers
    - Every mutation is a locked swap or append/remove
"""

from .app_state import AppState, ConnectionInfo, ServerStatus, get_local_ip
from .pairing import PairingSecret, generate_pairing_code
from .sessions import ConnectionSession, SessionRegistry

__all__ = [
    "AppState",
    "ConnectionInfo",
    "ServerStatus",
    "get_local_ip",
    "PairingSecret",
    "generate_pairing_code",
    "ConnectionSession",
    "SessionRegistry",
]
