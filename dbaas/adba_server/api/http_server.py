"""
HTTP server implementation for ADBA.

This module provides the REST API client apps use on the local network:
- Server status and connection info
- Tenant database create/list/get/delete
- Raw statement execution (pairing code required)
- Pairing code validation and rotation
- Client session attach/detach

Invariants:
    - Every response is the envelope {success, data?, error?}
    - AdbaError subclasses map to their http_status; anything else is 500
    - Handlers get AppState through closures, never through globals
    - Handlers never touch SQLite directly; TenantEngine off-loads it

How to change safely:
    - Add routes, don't change the shape of existing responses
    - Gate anything that reads or writes tenant rows with RequestGate
"""

from __future__ import annotations

import json
import logging
import socket
from collections.abc import Callable
from typing import Any

from aiohttp import web

from ..config import HttpConfig
from ..errors import AdbaError, DatabaseNotFoundError, InvalidRequestError
from ..state.app_state import AppState
from .gate import RequestGate

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_APP = "unknown"


def ok(data: Any, status: int = 200) -> web.Response:
    return web.json_response({"success": True, "data": data}, status=status)


def fail(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


def create_http_app(
    state: AppState,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create the aiohttp application for ADBA.

    Args:
        state: Shared application state
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    gate = RequestGate(state.pairing)

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "*"

        return response

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except DatabaseNotFoundError as e:
            logger.debug(f"{request.method} {request.path}: {e.message}")
            return fail(e.http_status, e.message)
        except AdbaError as e:
            if e.http_status >= 500:
                logger.error(f"{request.method} {request.path} failed: {e.message}")
            else:
                logger.info(
                    f"{request.method} {request.path} rejected: {e.message}",
                    extra={"error_code": e.code},
                )
            return fail(e.http_status, e.message)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return fail(500, str(e))

    app = web.Application(middlewares=[cors_middleware, error_middleware])

    app.router.add_get("/api/status", lambda r: handle_status(r, state))
    app.router.add_get("/api/info", lambda r: handle_info(r, state))

    app.router.add_get("/api/databases", lambda r: handle_list_databases(r, state))
    app.router.add_post("/api/databases", lambda r: handle_create_database(r, state))
    app.router.add_get("/api/databases/{name}", lambda r: handle_get_database(r, state))
    app.router.add_delete("/api/databases/{name}", lambda r: handle_delete_database(r, state))

    app.router.add_post("/api/query", lambda r: handle_query(r, state, gate))

    app.router.add_post("/api/pair", lambda r: handle_pair(r, gate))
    app.router.add_get("/api/pairing-code", lambda r: handle_get_pairing_code(r, state))
    app.router.add_post("/api/pairing-code", lambda r: handle_rotate_pairing_code(r, state))

    app.router.add_get("/api/sessions", lambda r: handle_list_sessions(r, state))
    app.router.add_post("/api/sessions", lambda r: handle_attach(r, state, gate))
    app.router.add_delete("/api/sessions/{session_id}", lambda r: handle_detach(r, state))

    return app


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body.

    Raises:
        InvalidRequestError: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Invalid JSON body")
    if not isinstance(body, dict):
        raise InvalidRequestError("JSON body must be an object")
    return body


def require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str):
        raise InvalidRequestError(f"{key} is required")
    return value


def optional_str(body: dict[str, Any], key: str, default: str) -> str:
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidRequestError(f"{key} must be a string")
    return value


async def handle_status(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/status - Server status."""
    status = await state.status_snapshot()
    return ok(status.to_dict())


async def handle_info(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/info - Connection info for clients."""
    return ok(state.connection_info_snapshot().to_dict())


async def handle_list_databases(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/databases - List tenant databases."""
    databases = await state.engine.list()
    return ok([db.to_dict() for db in databases])


async def handle_create_database(request: web.Request, state: AppState) -> web.Response:
    """Handle POST /api/databases - Create a tenant database."""
    body = await read_json(request)
    name = require_str(body, "name")
    client_app = optional_str(body, "client_app", DEFAULT_CLIENT_APP)

    info = await state.engine.create(name, client_app)
    return ok(info.to_dict(), status=201)


async def handle_get_database(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/databases/{name} - Get one tenant database."""
    name = request.match_info["name"]
    info = await state.engine.get(name)
    if info is None:
        raise DatabaseNotFoundError(name)
    return ok(info.to_dict())


async def handle_delete_database(request: web.Request, state: AppState) -> web.Response:
    """Handle DELETE /api/databases/{name} - Delete a tenant database."""
    name = request.match_info["name"]
    await state.engine.delete(name)
    return ok({"deleted": name})


async def handle_query(request: web.Request, state: AppState, gate: RequestGate) -> web.Response:
    """Handle POST /api/query - Run a statement against a tenant database."""
    body = await read_json(request)
    gate.require(body.get("pairing_code"))

    database = require_str(body, "database")
    query = require_str(body, "query")

    result = await state.engine.execute(database, query)
    return ok(result)


async def handle_pair(request: web.Request, gate: RequestGate) -> web.Response:
    """Handle POST /api/pair - Check a pairing code."""
    body = await read_json(request)
    valid = gate.authorize(body.get("pairing_code"))
    return ok({"valid": valid})


async def handle_get_pairing_code(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/pairing-code - Current pairing code."""
    return ok({"pairing_code": state.pairing_code()})


async def handle_rotate_pairing_code(request: web.Request, state: AppState) -> web.Response:
    """Handle POST /api/pairing-code - Rotate the pairing code."""
    return ok({"pairing_code": state.rotate_pairing_code()})


async def handle_list_sessions(request: web.Request, state: AppState) -> web.Response:
    """Handle GET /api/sessions - Attached client sessions."""
    return ok([s.to_dict() for s in state.sessions.snapshot()])


async def handle_attach(request: web.Request, state: AppState, gate: RequestGate) -> web.Response:
    """Handle POST /api/sessions - Attach a client to a database."""
    body = await read_json(request)
    gate.require(body.get("pairing_code"))

    database = require_str(body, "database")
    client_app = optional_str(body, "client_app", DEFAULT_CLIENT_APP)

    session = state.attach(client_app, database)
    return ok(session.to_dict(), status=201)


async def handle_detach(request: web.Request, state: AppState) -> web.Response:
    """Handle DELETE /api/sessions/{session_id} - Detach a client."""
    removed = state.detach(request.match_info["session_id"])
    return ok({"removed": removed})


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening TCP socket, falling back to port 0 if port is taken."""
    try:
        return _bind(host, port)
    except OSError as e:
        if port == 0:
            raise
        logger.warning(f"Port {port} unavailable ({e}), letting the OS pick one")
        return _bind(host, 0)


def _bind(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


async def start_http_server(
    state: AppState,
    config: HttpConfig | None = None,
) -> web.AppRunner:
    """Bind and start the HTTP server.

    Tries the configured port first and falls back to an OS-assigned port
    if it is taken. The bound port is stored in state.

    Args:
        state: Shared application state
        config: HTTP server configuration

    Returns:
        The running AppRunner; call cleanup() to stop it
    """
    config = config or HttpConfig()
    app = create_http_app(state, config)

    sock = bind_socket(config.host, config.port)
    bound_port = sock.getsockname()[1]

    runner = web.AppRunner(app, access_log=logger.getChild("access"))
    await runner.setup()
    site = web.SockSite(runner, sock)
    await site.start()

    state.set_port(bound_port)

    logger.info(f"HTTP server running on http://{config.host}:{bound_port}")
    return runner
