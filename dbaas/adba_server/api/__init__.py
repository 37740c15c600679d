"""
API module for ADBA server.

This module provides the external interface:
- HTTP server (aiohttp REST API)
- Request gate (pairing-code check)

Invariants:
    - Query execution and session attach require the current pairing code
    - Responses always use the {success, data, error} envelope

How to change safely:
    - Add new endpoints, don't modify existing response shapes
"""

from .gate import RequestGate
from .http_server import create_http_app, start_http_server

__all__ = [
    "RequestGate",
    "create_http_app",
    "start_http_server",
]
