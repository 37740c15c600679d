"""
Integration tests for TenantEngine against real SQLite files.

Tests cover:
- Create/list/get/delete lifecycle
- Name sanitization and collisions
- Statement execution and cell coercion
- Concurrent creates
- Reconciliation of orphaned rows and files
"""

import asyncio
import sqlite3
import tempfile
from pathlib import Path

import pytest

from dbaas.adba_server.errors import (
    DuplicateNameError,
    InvalidNameError,
    QueryFailedError,
)
from dbaas.adba_server.store import CatalogStore, DatabaseStatus, TenantEngine
from dbaas.adba_server.store.engine import is_query, sanitize_name


class TestHelpers:
    """Tests for module-level helpers."""

    def test_sanitize_name(self):
        """Only alphanumerics and underscore survive, lower-cased."""
        assert sanitize_name("My-DB!") == "mydb"
        assert sanitize_name("Orders_2024") == "orders_2024"
        assert sanitize_name("../../etc/passwd") == "etcpasswd"
        assert sanitize_name("!!!") == ""

    def test_is_query(self):
        """SELECT prefix decides the result shape."""
        assert is_query("SELECT 1")
        assert is_query("  select * from t")
        assert not is_query("INSERT INTO t VALUES (1)")
        assert not is_query("WITH x AS (SELECT 1) SELECT * FROM x")


class TestTenantEngine:
    """Integration tests for TenantEngine."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    async def engine(self, data_dir):
        """Create an initialized engine."""
        engine = TenantEngine(CatalogStore(data_dir / "catalog.db"), data_dir)
        await engine.initialize()
        yield engine
        await engine.close()

    @pytest.mark.asyncio
    async def test_create(self, engine, data_dir):
        """Create registers the database and makes an empty file."""
        info = await engine.create("orders", "shop")

        assert info.name == "orders"
        assert info.client_app == "shop"
        assert info.status == DatabaseStatus.ACTIVE
        assert info.tables_count == 0
        assert info.to_dict()["status"] == "Active"
        assert (data_dir / "tenant_orders.db").exists()

    @pytest.mark.asyncio
    async def test_create_sanitizes_file_name(self, engine, data_dir):
        """The file name uses the sanitized key; the catalog keeps the raw name."""
        await engine.create("My-DB!", "shop")

        assert (data_dir / "tenant_mydb.db").exists()
        assert (await engine.get("My-DB!")).name == "My-DB!"

    @pytest.mark.asyncio
    async def test_create_duplicate(self, engine):
        """The same name twice is rejected."""
        await engine.create("orders", "shop")
        with pytest.raises(DuplicateNameError):
            await engine.create("orders", "shop")

    @pytest.mark.asyncio
    async def test_create_sanitized_collision(self, engine):
        """Names that sanitize to the same key are rejected."""
        await engine.create("my-db", "shop")
        with pytest.raises(DuplicateNameError):
            await engine.create("MyDB", "other")
        with pytest.raises(DuplicateNameError):
            await engine.create("My.DB", "other")
        assert await engine.count() == 1

    @pytest.mark.asyncio
    async def test_create_invalid_name(self, engine):
        """Names with no usable characters are rejected."""
        with pytest.raises(InvalidNameError):
            await engine.create("---", "shop")
        assert await engine.count() == 0

    @pytest.mark.asyncio
    async def test_create_replaces_orphan_file(self, engine, data_dir):
        """A stale file with no catalog row is replaced by a fresh one."""
        conn = sqlite3.connect(data_dir / "tenant_orders.db")
        conn.execute("CREATE TABLE stale (x)")
        conn.close()

        info = await engine.create("orders", "shop")
        assert info.tables_count == 0
        assert (await engine.get("orders")).tables_count == 0

    @pytest.mark.asyncio
    async def test_list_reads_live_stats(self, engine):
        """list() reports current size and table count."""
        await engine.create("orders", "shop")
        await engine.execute("orders", "CREATE TABLE a (id INTEGER)")
        await engine.execute("orders", "CREATE TABLE b (id INTEGER)")

        [info] = await engine.list()
        assert info.tables_count == 2
        assert info.size_bytes > 0

    @pytest.mark.asyncio
    async def test_get_missing(self, engine):
        """get() returns None for unknown names."""
        assert await engine.get("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, engine, data_dir):
        """delete() removes the row and the file."""
        await engine.create("orders", "shop")

        assert await engine.delete("orders") is True
        assert await engine.get("orders") is None
        assert not (data_dir / "tenant_orders.db").exists()

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, engine):
        """Deleting an unknown name is not an error."""
        assert await engine.delete("nope") is False
        await engine.create("orders", "shop")
        assert await engine.delete("orders") is True
        assert await engine.delete("orders") is False

    @pytest.mark.asyncio
    async def test_delete_with_missing_file(self, engine, data_dir):
        """A row whose file vanished still deletes cleanly."""
        await engine.create("orders", "shop")
        (data_dir / "tenant_orders.db").unlink()

        assert await engine.delete("orders") is True
        assert await engine.count() == 0

    @pytest.mark.asyncio
    async def test_execute_select_literal(self, engine):
        """SELECT 1 returns one row keyed by the column label."""
        await engine.create("orders", "shop")
        assert await engine.execute("orders", "SELECT 1") == [{"1": 1}]

    @pytest.mark.asyncio
    async def test_execute_write_then_read(self, engine):
        """Writes report affected rows; reads return coerced rows."""
        await engine.create("orders", "shop")

        result = await engine.execute(
            "orders", "CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT, price REAL)"
        )
        assert result == {"affected_rows": 0}

        result = await engine.execute(
            "orders",
            "INSERT INTO items (label, price) VALUES ('pen', 1.5), ('cup', 4.25)",
        )
        assert result == {"affected_rows": 2}

        rows = await engine.execute("orders", "select id, label, price from items order by id")
        assert rows == [
            {"id": 1, "label": "pen", "price": 1.5},
            {"id": 2, "label": "cup", "price": 4.25},
        ]

    @pytest.mark.asyncio
    async def test_execute_numeric_text_stays_text(self, engine):
        """Text that looks numeric comes back as a string."""
        await engine.create("orders", "shop")
        await engine.execute("orders", "CREATE TABLE t (a TEXT, b INTEGER)")
        await engine.execute("orders", "INSERT INTO t VALUES ('42', 42)")

        assert await engine.execute("orders", "SELECT a, b FROM t") == [{"a": "42", "b": 42}]

    @pytest.mark.asyncio
    async def test_execute_null_and_blob(self, engine):
        """NULL and BLOB cells come back as null."""
        await engine.create("orders", "shop")
        rows = await engine.execute("orders", "SELECT NULL AS n, x'0102' AS b")
        assert rows == [{"n": None, "b": None}]

    @pytest.mark.asyncio
    async def test_execute_error(self, engine):
        """SQLite errors surface as QueryFailedError with the message."""
        await engine.create("orders", "shop")
        with pytest.raises(QueryFailedError, match="no such table"):
            await engine.execute("orders", "SELECT * FROM missing")

    @pytest.mark.asyncio
    async def test_execute_multiple_statements_rejected(self, engine):
        """Only one statement is run per call."""
        await engine.create("orders", "shop")
        with pytest.raises(QueryFailedError):
            await engine.execute("orders", "CREATE TABLE a (x); CREATE TABLE b (x)")

    @pytest.mark.asyncio
    async def test_execute_missing_database(self, engine, data_dir):
        """Executing on an unknown database fails without creating a file."""
        with pytest.raises(QueryFailedError, match="Database not found"):
            await engine.execute("ghost", "SELECT 1")
        assert not (data_dir / "tenant_ghost.db").exists()

    @pytest.mark.asyncio
    async def test_databases_are_isolated(self, engine):
        """Tables in one tenant are invisible to another."""
        await engine.create("a", "shop")
        await engine.create("b", "shop")
        await engine.execute("a", "CREATE TABLE only_in_a (x)")

        with pytest.raises(QueryFailedError):
            await engine.execute("b", "SELECT * FROM only_in_a")

    @pytest.mark.asyncio
    async def test_concurrent_creates(self, engine, data_dir):
        """Concurrent creates of distinct names all succeed."""
        names = [f"db_{i}" for i in range(50)]
        infos = await asyncio.gather(*(engine.create(name, "load") for name in names))

        assert len({info.id for info in infos}) == 50
        assert await engine.count() == 50
        assert len(list(data_dir.glob("tenant_*.db"))) == 50

    @pytest.mark.asyncio
    async def test_concurrent_same_name(self, engine):
        """Racing creates of one name leave exactly one winner."""
        results = await asyncio.gather(
            *(engine.create("orders", f"app{i}") for i in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, DuplicateNameError) for e in losers)

    @pytest.mark.asyncio
    async def test_wal_mode(self, data_dir):
        """Tenant files can be created in WAL mode."""
        engine = TenantEngine(
            CatalogStore(data_dir / "catalog.db", wal_mode=True),
            data_dir,
            wal_mode=True,
        )
        await engine.initialize()
        try:
            await engine.create("orders", "shop")
            rows = await engine.execute("orders", "SELECT 1 AS one")
            assert rows == [{"one": 1}]
            assert await engine.delete("orders") is True
            assert not (data_dir / "tenant_orders.db-wal").exists()
        finally:
            await engine.close()


    @pytest.mark.asyncio
    async def test_execute_infinite_real_is_null(self, engine):
        """Overflowing REAL literals come back as null."""
        await engine.create("orders", "shop")
        rows = await engine.execute("orders", "SELECT 1e999 AS pos, -1e999 AS neg, 2.5 AS ok")
        assert rows == [{"pos": None, "neg": None, "ok": 2.5}]

    @pytest.mark.asyncio
    async def test_key_locks_released(self, engine):
        """Per-key locks exist only while work on that key is running."""
        for i in range(200):
            assert await engine.delete(f"nope{i}") is False
        assert engine._key_locks == {}

        await asyncio.gather(*(engine.create(f"db_{i}", "load") for i in range(20)))
        await asyncio.gather(
            *(engine.execute(f"db_{i}", "SELECT 1") for i in range(20)),
            engine.execute("db_0", "CREATE TABLE t (x)"),
        )
        with pytest.raises(QueryFailedError):
            await engine.execute("ghost", "SELECT 1")
        assert engine._key_locks == {}

    @pytest.mark.asyncio
    async def test_same_key_still_serialized(self, engine):
        """Waiters on a busy key share the holder's lock."""
        await engine.create("orders", "shop")
        await engine.execute("orders", "CREATE TABLE t (n INTEGER)")

        await asyncio.gather(
            *(engine.execute("orders", f"INSERT INTO t VALUES ({i})") for i in range(30))
        )

        assert await engine.execute("orders", "SELECT COUNT(*) AS n FROM t") == [{"n": 30}]
        assert engine._key_locks == {}


class TestReconcile:
    """Tests for TenantEngine.reconcile."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    async def engine(self, data_dir):
        """Create an initialized engine."""
        engine = TenantEngine(CatalogStore(data_dir / "catalog.db"), data_dir)
        await engine.initialize()
        yield engine
        await engine.close()

    @pytest.mark.asyncio
    async def test_clean(self, engine):
        """A consistent directory reports nothing."""
        await engine.create("orders", "shop")
        report = await engine.reconcile()
        assert report.clean

    @pytest.mark.asyncio
    async def test_orphan_row(self, engine, data_dir):
        """A row whose file is missing is dropped."""
        await engine.create("orders", "shop")
        (data_dir / "tenant_orders.db").unlink()

        report = await engine.reconcile()

        assert report.orphan_rows == ["orders"]
        assert await engine.get("orders") is None

    @pytest.mark.asyncio
    async def test_orphan_file(self, engine, data_dir):
        """A tenant file with no row is removed; catalog.db is left alone."""
        sqlite3.connect(data_dir / "tenant_ghost.db").close()

        report = await engine.reconcile()

        assert report.orphan_files == ["tenant_ghost.db"]
        assert not (data_dir / "tenant_ghost.db").exists()
        assert (data_dir / "catalog.db").exists()

    @pytest.mark.asyncio
    async def test_dry_run(self, engine, data_dir):
        """Dry runs report drift without changing anything."""
        await engine.create("orders", "shop")
        (data_dir / "tenant_orders.db").unlink()
        sqlite3.connect(data_dir / "tenant_ghost.db").close()

        report = await engine.reconcile(dry_run=True)

        assert report.dry_run
        assert report.orphan_rows == ["orders"]
        assert report.orphan_files == ["tenant_ghost.db"]
        assert await engine.count() == 1
        assert (data_dir / "tenant_ghost.db").exists()
