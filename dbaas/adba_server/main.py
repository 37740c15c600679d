"""
ADBA Server - Main entry point.

This module starts the ADBA server with all components:
- Catalog and tenant engine (SQLite files under the data directory)
- Startup reconciliation of catalog rows against files
- Shared state (pairing code, bound port, sessions)
- HTTP server (REST API)

Usage:
    python -m dbaas.adba_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The catalog is initialized before the HTTP server binds
    - A catalog that cannot be initialized stops the process
    - Shutdown stops accepting requests before the worker pool is drained

How to change safely:
    - Add new components with enable/disable flags
    - Keep the shutdown order: HTTP first, engine last
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import json_log_formatter
from aiohttp import web

from .api import start_http_server
from .config import ServerConfig
from .discovery import build_announcement
from .state import AppState
from .store import CatalogStore, TenantEngine

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("dbaas.adba_server.api.http_server.access").setLevel(logging.WARNING)


def build_engine(config: ServerConfig) -> TenantEngine:
    data_dir = Path(config.storage.data_dir).expanduser()
    catalog = CatalogStore(
        data_dir / config.storage.catalog_filename,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )
    return TenantEngine(
        catalog=catalog,
        data_dir=data_dir,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
        max_workers=config.storage.max_workers,
    )


class Server:
    """ADBA Server orchestrator.

    Attributes:
        config: Server configuration
        engine: Tenant database engine
        state: Shared application state
        runner: aiohttp runner once the HTTP server is up

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running until request_shutdown()
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.engine: TenantEngine | None = None
        self.state: AppState | None = None
        self.runner: web.AppRunner | None = None

    async def start(self, wait: bool = True) -> None:
        """Start the server and all components.

        Args:
            wait: Block until request_shutdown() is called
        """
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting ADBA server")
        self.config.log_config()

        try:
            self.engine = build_engine(self.config)
            await self.engine.initialize()

            if self.config.storage.reconcile_on_startup:
                await self.engine.reconcile()

            self.state = AppState(self.engine, port=self.config.http.port)
            self.runner = await start_http_server(self.state, self.config.http)

            announcement = build_announcement(
                self.state.port,
                self.state.pairing_code(),
                self.config.discovery,
            )
            logger.info(
                f"Service '{announcement.instance_name}' ready for LAN announcement",
                extra={
                    "service_type": announcement.service_type,
                    "port": announcement.port,
                    "properties": announcement.properties,
                },
            )

            self._running = True
            logger.info(f"ADBA server started, pairing code: {self.state.pairing_code()}")

            if wait:
                await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self.runner is None and self.engine is None:
            return

        logger.info("Stopping ADBA server")

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        if self.engine:
            await self.engine.close()
            self.engine = None

        self._running = False
        logger.info("ADBA server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    exit_code = 0
    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    except Exception:
        exit_code = 1
    finally:
        loop.run_until_complete(server.stop())
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
