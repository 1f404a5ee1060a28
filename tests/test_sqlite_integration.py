"""End-to-end tests against real SQLite files through aiosqlite.

Fixtures seed the databases with the standard library ``sqlite3`` module;
everything under test goes through ``AsyncSqliteConnector``.
"""

import sqlite3
from datetime import datetime

import pytest

from db_reconcile.adapters.sqlite import AsyncSqliteConnector
from db_reconcile.schema.comparator import compare_schemas, get_migration_sql
from db_reconcile.schema.migrate import apply_migration
from db_reconcile.schema.models import DiffType
from db_reconcile.sync.engine import (
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table,
)
from db_reconcile.sync.models import SyncMode, SyncOptions, SyncStatus
from db_reconcile.sync.sources import ListRowSource, TableRowSource

USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT DEFAULT 'x'
)
"""

ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER REFERENCES users (id) ON DELETE CASCADE,
    total REAL
)
"""


def _seed(path, *statements):
    conn = sqlite3.connect(path)
    try:
        for statement in statements:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


def _rows(path, sql):
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


@pytest.fixture
def databases(tmp_path):
    """Source and target database paths."""
    return tmp_path / "source.db", tmp_path / "target.db"


async def _connect(path, connection_id):
    connector = AsyncSqliteConnector(f"sqlite:///{path}", connection_id=connection_id)
    await connector.connect()
    return connector


# ------------------------------------------------------------------
# Introspection
# ------------------------------------------------------------------


class TestSqliteIntrospection:
    """Catalog queries and normalization on a real database."""

    @pytest.mark.asyncio
    async def test_table_schema(self, databases):
        """Columns, keys, indexes and FKs are read from the pragmas."""
        source_path, _ = databases
        _seed(
            source_path,
            USERS_DDL,
            ORDERS_DDL,
            "CREATE INDEX idx_orders_total ON orders (total)",
            "CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100",
        )
        connector = await _connect(source_path, "src")
        try:
            assert "main" in await connector.get_schemas()

            tables = await connector.get_tables()
            assert [(t.name, t.table_type) for t in tables] == [
                ("big_orders", "view"), ("orders", "table"), ("users", "table"),
            ]

            users = await connector.get_table_schema("main", "users")
            assert users.column_names == ["id", "email", "name"]
            assert users.primary_key == ["id"]
            assert users.get_column("email").is_unique
            assert not users.get_column("email").nullable
            assert users.get_column("name").default_value == "'x'"

            orders = await connector.get_table_schema("main", "orders")
            assert [i.name for i in orders.indexes] == ["idx_orders_total"]
            fk = orders.foreign_keys[0]
            assert (fk.referenced_table, fk.referenced_columns, fk.on_delete) == (
                "users", ["id"], "CASCADE",
            )
            assert await connector.get_server_version()
        finally:
            await connector.disconnect()


# ------------------------------------------------------------------
# Schema diff and migration
# ------------------------------------------------------------------


class TestSqliteMigration:
    """compare_schemas + apply_migration round trip."""

    @pytest.mark.asyncio
    async def test_self_diff_is_empty(self, databases):
        """A database compared with itself has no differences."""
        source_path, _ = databases
        _seed(source_path, USERS_DDL, ORDERS_DDL)
        connector = await _connect(source_path, "src")
        try:
            diff = await compare_schemas(connector, connector)
            assert not diff.has_changes
        finally:
            await connector.disconnect()

    @pytest.mark.asyncio
    async def test_removed_column(self, databases):
        """A target-only column is dropped with plain DROP COLUMN."""
        source_path, target_path = databases
        _seed(source_path, "CREATE TABLE orders (id INTEGER PRIMARY KEY)")
        _seed(target_path, "CREATE TABLE orders (id INTEGER PRIMARY KEY, total REAL)")
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            diff = await compare_schemas(source, target)
            assert [i.type for i in diff.items] == [DiffType.COLUMN_REMOVED]
            assert get_migration_sql(diff) == ['ALTER TABLE "orders" DROP COLUMN "total";']
        finally:
            await source.disconnect()
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_migration_round_trip(self, databases):
        """After applying the migration the schemas compare equal."""
        source_path, target_path = databases
        _seed(source_path, USERS_DDL, ORDERS_DDL, "CREATE INDEX idx_orders_total ON orders (total)")
        _seed(
            target_path,
            "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL UNIQUE)",
            "CREATE TABLE legacy (id INTEGER PRIMARY KEY)",
        )
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            diff = await compare_schemas(source, target)
            assert [i.type for i in diff.items] == [
                DiffType.TABLE_ADDED,
                DiffType.COLUMN_ADDED,
                DiffType.TABLE_REMOVED,
            ]

            result = await apply_migration(target, diff, dry_run=False, confirm=True)
            assert result.success, result.error
            assert result.executed == len(get_migration_sql(diff))

            after = await compare_schemas(source, target)
            assert not after.has_changes, after.format_report()
        finally:
            await source.disconnect()
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_unique_column_round_trip(self, databases):
        """A UNIQUE column added to an existing table keeps its uniqueness."""
        source_path, target_path = databases
        _seed(source_path, "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT UNIQUE)")
        _seed(target_path, "CREATE TABLE users (id INTEGER PRIMARY KEY)")
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            diff = await compare_schemas(source, target)
            assert get_migration_sql(diff) == [
                'ALTER TABLE "users" ADD COLUMN "email" TEXT;',
                'CREATE UNIQUE INDEX "users_email_key" ON "users" ("email");',
            ]

            result = await apply_migration(target, diff, dry_run=False, confirm=True)
            assert result.success, result.error

            after = await compare_schemas(source, target)
            assert not after.has_changes, after.format_report()
        finally:
            await source.disconnect()
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_failed_statement_stops_migration(self, databases):

        """A rejected statement is reported with its position."""
        source_path, target_path = databases
        _seed(source_path, "CREATE TABLE users (id INTEGER PRIMARY KEY, code TEXT NOT NULL)")
        _seed(target_path, "CREATE TABLE users (id INTEGER PRIMARY KEY)", "INSERT INTO users VALUES (1)")
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            diff = await compare_schemas(source, target)
            assert "NOT NULL column without default" in diff.items[0].notes[0]

            result = await apply_migration(target, diff, dry_run=False, confirm=True)
            assert not result.success
            assert result.executed == 0
            assert result.error.startswith("Statement 1 failed")
        finally:
            await source.disconnect()
            await target.disconnect()


# ------------------------------------------------------------------
# Data sync
# ------------------------------------------------------------------


class TestSqliteSync:
    """Row sync on real tables."""

    @pytest.fixture
    def seeded(self, databases):
        source_path, target_path = databases
        _seed(
            source_path,
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)",
            "INSERT INTO users VALUES (1, 'a'), (2, 'b')",
        )
        _seed(
            target_path,
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)",
            "INSERT INTO users VALUES (1, 'a'), (3, 'c')",
        )
        return source_path, target_path

    @pytest.mark.asyncio
    async def test_sync_with_delete_extra(self, seeded):
        """Missing rows are inserted and extra rows deleted; a rerun is a no-op."""
        source_path, target_path = seeded
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            options = SyncOptions(delete_extra=True)
            run = await sync_table(
                TableRowSource(source, "users"), TableRowSource(target, "users"), ["id"], options
            )
            assert run.status is SyncStatus.COMPLETED
            assert (run.inserts, run.updates, run.deletes) == (1, 0, 1)
            assert _rows(target_path, "SELECT id, name FROM users ORDER BY id") == [
                (1, "a"), (2, "b"),
            ]

            again = await sync_table(
                TableRowSource(source, "users"), TableRowSource(target, "users"), ["id"], options
            )
            assert again.status is SyncStatus.COMPLETED
            assert again.total_changes == 0
        finally:
            await source.disconnect()
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_data_diff_and_row_counts(self, seeded):
        """Key diff and COUNT(*) comparison report without writing."""
        source_path, target_path = seeded
        source = await _connect(source_path, "src")
        target = await _connect(target_path, "dst")
        try:
            diff = await get_table_data_diff(
                TableRowSource(source, "users"), TableRowSource(target, "users"), ["id"]
            )
            assert (diff.missing_in_target, diff.missing_in_source, diff.different) == (1, 1, 0)

            counts = await get_table_row_counts(source, target)
            assert [(c.table, c.source_count, c.target_count) for c in counts] == [("users", 2, 2)]
            assert counts[0].in_sync
        finally:
            await source.disconnect()
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_sync_rows_modes(self, seeded):
        """Insert mode keeps existing rows; upsert mode overwrites them."""
        _, target_path = seeded
        target = await _connect(target_path, "dst")
        try:
            rows = [{"id": 1, "name": "changed"}, {"id": 4, "name": "d"}]

            run = await sync_rows(rows, TableRowSource(target, "users"), ["id"], mode=SyncMode.INSERT)
            assert (run.inserts, run.updates) == (1, 0)
            assert _rows(target_path, "SELECT name FROM users WHERE id = 1") == [("a",)]

            run = await sync_rows(rows, TableRowSource(target, "users"), ["id"])
            assert (run.inserts, run.updates) == (0, 1)
            assert _rows(target_path, "SELECT name FROM users WHERE id = 1") == [("changed",)]
        finally:
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_datetime_rows_rerun_is_noop(self, tmp_path):
        """Timestamps read back as text still match their source datetimes."""
        target_path = tmp_path / "events.db"
        _seed(target_path, "CREATE TABLE events (id INTEGER PRIMARY KEY, at TEXT)")
        target = await _connect(target_path, "dst")
        try:
            rows = [{"id": 1, "at": datetime(2024, 1, 2, 3, 4, 5)}]

            first = await sync_rows(rows, TableRowSource(target, "events"), ["id"])
            assert first.inserts == 1
            assert _rows(target_path, "SELECT at FROM events") == [("2024-01-02 03:04:05",)]

            second = await sync_rows(rows, TableRowSource(target, "events"), ["id"])
            assert second.status is SyncStatus.COMPLETED
            assert second.total_changes == 0
        finally:
            await target.disconnect()

    @pytest.mark.asyncio
    async def test_constraint_violation_rolls_back_batch(self, tmp_path):

        """A rejected batch fails the run and none of its rows are kept."""
        target_path = tmp_path / "strict.db"
        _seed(target_path, "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        target = await _connect(target_path, "dst")
        try:
            rows = [{"id": 5, "name": "e"}, {"id": 6, "name": None}]
            source = ListRowSource(rows, table="users", connection_id="src")

            run = await sync_table(source, TableRowSource(target, "users"), ["id"])

            assert run.status is SyncStatus.FAILED
            assert run.inserts == 0
            assert run.errors[0].startswith("insert batch 1 failed")
            assert _rows(target_path, "SELECT COUNT(*) FROM users") == [(0,)]
        finally:
            await target.disconnect()
