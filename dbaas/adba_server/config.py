"""
Configuration management for ADBA Server.

All configuration is done via environment variables - there is no config file.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for running on a single device
    - The pairing code is never part of configuration (generated per process)
    - Secrets are never logged

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Keep the ADBA_ prefix for anything new
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def default_data_dir() -> str:
    """Per-user data directory (``~/.adba/data``)."""
    return str(Path.home() / ".adba" / "data")


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory holding catalog.db and every tenant_*.db
        catalog_filename: Name of the catalog file inside data_dir
        wal_mode: Put tenant and catalog files in SQLite WAL journal mode
        busy_timeout_ms: SQLite busy timeout in milliseconds
        reconcile_on_startup: Drop orphaned rows/files before serving
        max_workers: Size of the thread pool running blocking SQLite work
    """

    data_dir: str = field(default_factory=default_data_dir)
    catalog_filename: str = "catalog.db"
    wal_mode: bool = False
    busy_timeout_ms: int = 5000
    reconcile_on_startup: bool = True
    max_workers: int = 8

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("ADBA_DATA_DIR", default_data_dir()),
            catalog_filename=os.getenv("ADBA_CATALOG_FILENAME", "catalog.db"),
            wal_mode=_env_bool("ADBA_SQLITE_WAL_MODE", "false"),
            busy_timeout_ms=_env_int("ADBA_SQLITE_BUSY_TIMEOUT_MS", 5000),
            reconcile_on_startup=_env_bool("ADBA_RECONCILE_ON_STARTUP", "true"),
            max_workers=_env_int("ADBA_MAX_WORKERS", 8),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Preferred port; an OS-assigned port is used if it is taken
        cors_origins: Allowed CORS origins ("*" for any)
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("ADBA_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("ADBA_HTTP_HOST", "0.0.0.0"),
            port=_env_int("ADBA_HTTP_PORT", 8080),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class DiscoveryConfig:
    """LAN service announcement settings.

    Attributes:
        service_type: DNS-SD service type
        service_name: Human readable instance name prefix
        protocol: Advertised client protocol
    """

    service_type: str = "_adba._tcp.local."
    service_name: str = "ADBA Database Server"
    protocol: str = "http"

    @classmethod
    def from_env(cls) -> DiscoveryConfig:
        """Load configuration from environment variables."""
        return cls(
            service_type=os.getenv("ADBA_SERVICE_TYPE", "_adba._tcp.local."),
            service_name=os.getenv("ADBA_SERVICE_NAME", "ADBA Database Server"),
            protocol=os.getenv("ADBA_PROTOCOL", "http"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Local storage configuration
        http: HTTP server configuration
        discovery: Service announcement configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            http=HttpConfig.from_env(),
            discovery=DiscoveryConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.data_dir:
            raise ValueError("ADBA_DATA_DIR must not be empty")
        if self.storage.max_workers < 1:
            raise ValueError("ADBA_MAX_WORKERS must be at least 1")
        if self.storage.busy_timeout_ms < 0:
            raise ValueError("ADBA_SQLITE_BUSY_TIMEOUT_MS must not be negative")
        if not 0 <= self.http.port <= 65535:
            raise ValueError(f"ADBA_HTTP_PORT out of range: {self.http.port}")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created at startup."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "wal_mode": self.storage.wal_mode,
                "max_workers": self.storage.max_workers,
                "reconcile_on_startup": self.storage.reconcile_on_startup,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "service_type": self.discovery.service_type,
                "log_level": self.observability.log_level,
            },
        )
