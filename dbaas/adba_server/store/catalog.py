"""
Tenant catalog SQLite store for ADBA.

The catalog is a single metadata table listing every tenant database.
It is the authoritative answer to "which databases exist".

Invariants:
    - One row per tenant database
    - name and file_key are both UNIQUE
    - Rows are inserted and deleted, never updated
    - Every method is blocking; async callers off-load them to a worker

Table schema:
    databases:
        - id TEXT PRIMARY KEY (UUID)
        - name TEXT NOT NULL UNIQUE (raw user input)
        - file_key TEXT NOT NULL UNIQUE (sanitized name)
        - client_app TEXT NOT NULL
        - created_at INTEGER NOT NULL (Unix ms)

How to change safely:
    - Add columns with defaults; older catalog files must still open
    - Bump SCHEMA_VERSION and add a migration step in initialize()
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ..errors import DuplicateNameError, StorageUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantDatabaseRecord:
    """A catalog row.

    Attributes:
        id: Unique identifier (UUID)
        name: Name as supplied by the client
        file_key: Sanitized name the tenant file is derived from
        client_app: Owning client label
        created_at: Creation timestamp (Unix ms)
    """

    id: str
    name: str
    file_key: str
    client_app: str
    created_at: int


class CatalogStore:
    """SQLite-backed catalog of tenant databases.

    Thread safety:
        Each operation opens its own connection, so instances can be shared
        between worker threads. SQLite serializes concurrent writers using
        the busy timeout.

    Example:
        >>> catalog = CatalogStore("/data/catalog.db")
        >>> catalog.initialize()
        >>> catalog.insert(record)
        >>> catalog.find("orders")
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str | Path,
        wal_mode: bool = False,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection to the catalog file.

        Raises:
            StorageUnavailableError: If the file cannot be opened
        """
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open catalog {self.path}: {e}") from e

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the data directory and catalog schema if missing.

        Safe to call any number of times.

        Raises:
            StorageUnavailableError: If the catalog cannot be created
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create data directory: {e}") from e

        try:
            with self._get_connection() as conn:
                conn.executescript(f"""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at INTEGER NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS databases (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL UNIQUE,
                        file_key TEXT NOT NULL UNIQUE,
                        client_app TEXT NOT NULL,
                        created_at INTEGER NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_databases_created
                        ON databases(created_at DESC);

                    INSERT OR IGNORE INTO schema_version (version, applied_at)
                    VALUES ({self.SCHEMA_VERSION}, strftime('%s', 'now') * 1000);
                """)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot initialize catalog: {e}") from e

        logger.info(f"Catalog initialized at {self.path}")

    def insert(self, record: TenantDatabaseRecord) -> None:
        """Insert a catalog row.

        Raises:
            DuplicateNameError: If name or file_key is already taken
            StorageUnavailableError: On any other SQLite failure
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO databases (id, name, file_key, client_app, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.name,
                        record.file_key,
                        record.client_app,
                        record.created_at,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateNameError(record.name, record.file_key) from e
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot write catalog: {e}") from e

    def list(self) -> list[TenantDatabaseRecord]:
        """Return every row, newest first."""
        return self._select(
            "SELECT id, name, file_key, client_app, created_at FROM databases "
            "ORDER BY created_at DESC, name",
            (),
        )

    def find(self, name: str) -> TenantDatabaseRecord | None:
        """Return the row with this exact name, or None."""
        rows = self._select(
            "SELECT id, name, file_key, client_app, created_at FROM databases WHERE name = ?",
            (name,),
        )
        return rows[0] if rows else None

    def find_by_key(self, file_key: str) -> TenantDatabaseRecord | None:
        """Return the row owning this sanitized key, or None."""
        rows = self._select(
            "SELECT id, name, file_key, client_app, created_at FROM databases "
            "WHERE file_key = ?",
            (file_key,),
        )
        return rows[0] if rows else None

    def remove(self, name: str) -> bool:
        """Delete the row with this name.

        Returns:
            True if a row was deleted. Absent names are not an error.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM databases WHERE name = ?", (name,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot write catalog: {e}") from e

    def count(self) -> int:
        """Number of catalog rows."""
        try:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM databases").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot read catalog: {e}") from e

    def _select(self, sql: str, params: tuple) -> list[TenantDatabaseRecord]:
        try:
            with self._get_connection() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot read catalog: {e}") from e

        return [
            TenantDatabaseRecord(
                id=row[0],
                name=row[1],
                file_key=row[2],
                client_app=row[3],
                created_at=row[4],
            )
            for row in rows
        ]
