"""
Tenant database engine for ADBA.

This module owns the lifecycle of every tenant SQLite file:
- Creating an empty database file and registering it in the catalog
- Listing tenant databases with live size and table counts
- Deleting the catalog row and the file
- Executing raw statements against one tenant's file
- Reconciling catalog rows and files after a crash

Invariants:
    - One SQLite file per tenant: {data_dir}/tenant_{file_key}.db
    - file_key is the sanitized name; two names with the same key collide
      and the second create fails with DuplicateNameError
    - Size and table count are read from the file on every call, never cached
    - All blocking SQLite and filesystem work runs on the engine's thread pool
    - Operations on the same file_key are serialized by a per-key asyncio.Lock
      that only exists while work on that key is in flight;
      different keys run in parallel

Crash consistency:
    The catalog and the tenant file are two separate files, so create and
    delete are not atomic across them. create() removes the file it made if
    the catalog insert fails, and reconcile() drops orphaned rows and files
    left behind by a crash. It runs at startup.

How to change safely:
    - Keep the "SELECT" prefix rule; clients depend on the result shape
    - Anything new that opens a tenant file must go through _run()
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sqlite3
import time
import uuid
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from ..errors import (
    DuplicateNameError,
    InvalidNameError,
    QueryFailedError,
    StorageUnavailableError,
)
from .catalog import CatalogStore, TenantDatabaseRecord
from .coercion import coerce_row

logger = logging.getLogger(__name__)

T = TypeVar("T")

TENANT_PREFIX = "tenant_"
TENANT_SUFFIX = ".db"
SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def sanitize_name(name: str) -> str:
    """Strip everything but alphanumerics and underscore, then lower-case."""
    return "".join(c for c in name if c.isalnum() or c == "_").lower()


def is_query(statement: str) -> bool:
    """Statements starting with SELECT (any case) return rows."""
    return statement.strip().upper().startswith("SELECT")


def now_ms() -> int:
    return int(time.time() * 1000)


class DatabaseStatus(Enum):
    """Reported state of a tenant database. Only ACTIVE is produced today."""

    ACTIVE = "Active"
    SYNCING = "Syncing"
    OFFLINE = "Offline"
    ERROR = "Error"


@dataclass
class TenantDatabaseInfo:
    """Catalog row joined with live file inspection.

    Attributes:
        id: Unique identifier (UUID)
        name: Database name as created
        client_app: Owning client label
        created_at: Creation timestamp (Unix ms)
        size_bytes: File size at read time
        tables_count: Number of tables in the file at read time
        status: Database status
    """

    id: str
    name: str
    client_app: str
    created_at: int
    size_bytes: int = 0
    tables_count: int = 0
    status: DatabaseStatus = DatabaseStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "client_app": self.client_app,
            "created_at": self.created_at,
            "size_bytes": self.size_bytes,
            "tables_count": self.tables_count,
            "status": self.status.value,
        }


@dataclass
class ReconcileReport:
    """Drift found between the catalog and the data directory.

    Attributes:
        orphan_rows: Catalog names whose tenant file is missing
        orphan_files: Tenant file names with no catalog row
        dry_run: Whether anything was actually removed
    """

    orphan_rows: list[str] = field(default_factory=list)
    orphan_files: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def clean(self) -> bool:
        return not self.orphan_rows and not self.orphan_files

    def to_dict(self) -> dict[str, Any]:
        return {
            "orphan_rows": list(self.orphan_rows),
            "orphan_files": list(self.orphan_files),
            "dry_run": self.dry_run,
        }


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TenantEngine:
    """Manages the per-tenant SQLite files and the catalog that lists them.

    Thread safety:
        Public methods are coroutines. Each one hands its blocking work to
        a bounded ThreadPoolExecutor and opens fresh connections per call.

    Example:
        >>> engine = TenantEngine(CatalogStore("/data/catalog.db"), "/data")
        >>> await engine.initialize()
        >>> info = await engine.create("orders", "shop")
        >>> rows = await engine.execute("orders", "SELECT 1")
    """

    def __init__(
        self,
        catalog: CatalogStore,
        data_dir: str | Path,
        wal_mode: bool = False,
        busy_timeout_ms: int = 5000,
        max_workers: int = 8,
    ) -> None:
        """Initialize the engine.

        Args:
            catalog: Catalog store listing tenant databases
            data_dir: Directory holding tenant files
            wal_mode: Put new tenant files in SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout
            max_workers: Thread pool size for blocking work
        """
        self.catalog = catalog
        self.data_dir = Path(data_dir)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="adba-sqlite",
        )
        self._key_locks: dict[str, _KeyLock] = {}

    def db_path(self, file_key: str) -> Path:
        """Path of the tenant file for a sanitized key."""
        return self.data_dir / f"{TENANT_PREFIX}{file_key}{TENANT_SUFFIX}"

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    @asynccontextmanager
    async def _locked(self, file_key: str) -> AsyncIterator[None]:
        """Hold the lock for one file_key.

        Entries are dropped when their last holder or waiter leaves, so the
        map only ever holds keys with work in flight.
        """
        entry = self._key_locks.get(file_key)
        if entry is None:
            entry = self._key_locks[file_key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._key_locks[file_key]

    async def initialize(self) -> None:
        """Create the data directory and catalog schema.

        Raises:
            StorageUnavailableError: If the catalog cannot be created
        """
        await self._run(self.catalog.initialize)

    async def close(self) -> None:
        """Wait for queued work and stop the worker threads."""
        await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(self._executor.shutdown, wait=True)
        )

    # ---------------------------------------------------------------- create

    async def create(self, name: str, client_app: str) -> TenantDatabaseInfo:
        """Create an empty tenant database and register it.

        Raises:
            InvalidNameError: If name has no usable characters
            DuplicateNameError: If name or its sanitized form is taken
            StorageUnavailableError: If the file or catalog cannot be written
        """
        file_key = sanitize_name(name)
        if not file_key:
            raise InvalidNameError(name)

        async with self._locked(file_key):
            info = await self._run(self._create_sync, name, file_key, client_app)

        logger.info(
            f"Created database '{name}' for app '{client_app}'",
            extra={"database": name, "file_key": file_key, "client_app": client_app},
        )
        return info

    def _create_sync(self, name: str, file_key: str, client_app: str) -> TenantDatabaseInfo:
        owner = self.catalog.find_by_key(file_key)
        if owner is not None:
            raise DuplicateNameError(name, file_key)

        path = self.db_path(file_key)
        try:
            if path.exists():
                logger.warning(f"Replacing orphaned tenant file {path.name}")
                self._remove_files(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect(path, mode="rwc")
            conn.close()
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailableError(f"Cannot create database file: {e}") from e

        record = TenantDatabaseRecord(
            id=str(uuid.uuid4()),
            name=name,
            file_key=file_key,
            client_app=client_app,
            created_at=now_ms(),
        )
        try:
            self.catalog.insert(record)
        except Exception:
            self._remove_files(path)
            raise

        return TenantDatabaseInfo(
            id=record.id,
            name=record.name,
            client_app=record.client_app,
            created_at=record.created_at,
            size_bytes=self._file_size(path),
            tables_count=0,
        )

    # ------------------------------------------------------------------ read

    async def list(self) -> list[TenantDatabaseInfo]:
        """All tenant databases, newest first."""
        return await self._run(self._list_sync)

    def _list_sync(self) -> list[TenantDatabaseInfo]:
        return [self._info(record) for record in self.catalog.list()]

    async def get(self, name: str) -> TenantDatabaseInfo | None:
        """One tenant database, or None if the catalog has no such name."""
        return await self._run(self._get_sync, name)

    def _get_sync(self, name: str) -> TenantDatabaseInfo | None:
        record = self.catalog.find(name)
        if record is None:
            return None
        return self._info(record)

    async def count(self) -> int:
        """Number of catalog rows."""
        return await self._run(self.catalog.count)

    def _info(self, record: TenantDatabaseRecord) -> TenantDatabaseInfo:
        path = self.db_path(record.file_key)
        return TenantDatabaseInfo(
            id=record.id,
            name=record.name,
            client_app=record.client_app,
            created_at=record.created_at,
            size_bytes=self._file_size(path),
            tables_count=self._table_count(path),
        )

    @staticmethod
    def _file_size(path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError:
            return 0

    def _table_count(self, path: Path) -> int:
        if not path.exists():
            return 0
        try:
            conn = self._connect(path, mode="ro")
            try:
                row = conn.execute(
                    "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table'"
                ).fetchone()
                return int(row[0])
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.debug(f"Cannot count tables in {path.name}: {e}")
            return 0

    # ---------------------------------------------------------------- delete

    async def delete(self, name: str) -> bool:
        """Remove the catalog row, then the tenant file.

        Returns:
            True if a catalog row was removed. Deleting an unknown name,
            or a database whose file is already gone, is not an error.

        Raises:
            StorageUnavailableError: If the catalog or file cannot be removed
        """
        file_key = sanitize_name(name)
        if not file_key:
            return False

        async with self._locked(file_key):
            removed = await self._run(self._delete_sync, name, file_key)

        if removed:
            logger.info(f"Deleted database '{name}'", extra={"database": name})
        else:
            logger.debug(f"Delete of unknown database '{name}' ignored")
        return removed

    def _delete_sync(self, name: str, file_key: str) -> bool:
        record = self.catalog.find(name)
        if record is None:
            return False

        self.catalog.remove(name)
        try:
            self._remove_files(self.db_path(record.file_key))
        except OSError as e:
            raise StorageUnavailableError(f"Cannot delete database file: {e}") from e
        return True

    @staticmethod
    def _remove_files(path: Path) -> None:
        path.unlink(missing_ok=True)
        for suffix in SIDECAR_SUFFIXES:
            path.with_name(path.name + suffix).unlink(missing_ok=True)

    # --------------------------------------------------------------- execute

    async def execute(self, name: str, statement: str) -> list[dict[str, Any]] | dict[str, int]:
        """Run one statement verbatim against a tenant database.

        Returns:
            For SELECT statements, a list of {column: value} rows with
            coerced cells. Otherwise {"affected_rows": n}.

        Raises:
            QueryFailedError: On any SQLite error, including a missing database
        """
        file_key = sanitize_name(name)
        if not file_key:
            raise QueryFailedError(f"Database not found: {name}")

        async with self._locked(file_key):
            return await self._run(self._execute_sync, name, file_key, statement)

    def _execute_sync(
        self, name: str, file_key: str, statement: str
    ) -> list[dict[str, Any]] | dict[str, int]:
        path = self.db_path(file_key)
        if not path.exists():
            raise QueryFailedError(f"Database not found: {name}")

        try:
            conn = self._connect(path, mode="rw")
            try:
                cursor = conn.execute(statement)
                if is_query(statement):
                    columns = [d[0] for d in cursor.description or ()]
                    return [coerce_row(columns, row) for row in cursor.fetchall()]
                return {"affected_rows": max(cursor.rowcount, 0)}
            finally:
                conn.close()
        except (sqlite3.Error, sqlite3.Warning) as e:
            logger.debug(f"Statement failed on '{name}': {e}")
            raise QueryFailedError(str(e), details={"database": name}) from e

    def _connect(self, path: Path, mode: str) -> sqlite3.Connection:
        """Open a tenant file.

        mode is the SQLite URI open mode: "ro", "rw" (must exist) or "rwc".
        """
        uri = f"{path.resolve().as_uri()}?mode={mode}"
        conn = sqlite3.connect(
            uri,
            uri=True,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode and mode == "rwc":
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    # ------------------------------------------------------------- reconcile

    async def reconcile(self, dry_run: bool = False) -> ReconcileReport:
        """Drop catalog rows without files and files without catalog rows.

        Args:
            dry_run: Only report, remove nothing

        Returns:
            ReconcileReport listing what was (or would be) removed
        """
        report = await self._run(self._reconcile_sync, dry_run)
        if report.clean:
            logger.info("Catalog and data directory are consistent")
        else:
            logger.warning(
                "Catalog drift found",
                extra=report.to_dict(),
            )
        return report

    def _reconcile_sync(self, dry_run: bool) -> ReconcileReport:
        report = ReconcileReport(dry_run=dry_run)
        records = self.catalog.list()
        known_keys = {record.file_key for record in records}

        for record in records:
            if not self.db_path(record.file_key).exists():
                report.orphan_rows.append(record.name)
                if not dry_run:
                    self.catalog.remove(record.name)

        if self.data_dir.exists():
            for path in sorted(self.data_dir.glob(f"{TENANT_PREFIX}*{TENANT_SUFFIX}")):
                file_key = path.name[len(TENANT_PREFIX) : -len(TENANT_SUFFIX)]
                if file_key in known_keys:
                    continue
                report.orphan_files.append(path.name)
                if not dry_run:
                    try:
                        self._remove_files(path)
                    except OSError as e:
                        raise StorageUnavailableError(f"Cannot remove {path.name}: {e}") from e

        return report
