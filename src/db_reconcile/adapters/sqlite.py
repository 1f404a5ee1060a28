"""Async SQLite connector.

Provides ``AsyncSqliteConnector`` on SQLAlchemy's async engine with the
``aiosqlite`` driver.  Catalog metadata comes from the table-valued pragma
functions (``pragma_table_info``, ``pragma_index_list`` ...), which take
the schema (``main`` or an attached database) as their last argument.

Usage:
    from db_reconcile.adapters.sqlite import AsyncSqliteConnector

    connector = AsyncSqliteConnector("sqlite:///./local.db", connection_id="local")
    await connector.connect()
    table = await connector.get_table_schema("main", "users")
    await connector.disconnect()
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import event

from db_reconcile.adapters.base import (
    DatabaseEngine,
    ExecuteResult,
    QueryResult,
    Statement,
)
from db_reconcile.adapters.engine import EngineHandle
from db_reconcile.schema.models import TableInfo, TableSchema
from db_reconcile.schema.normalizer import IntrospectionRows, normalize
from db_reconcile.schema.sql import quote_identifier

_COLUMNS_SQL = """
    SELECT cid, name, type, "notnull", dflt_value, pk
    FROM pragma_table_info(:table, :schema)
    ORDER BY cid
"""

_INDEXES_SQL = """
    SELECT
        il.name AS index_name,
        il."unique" AS is_unique,
        il.origin AS origin,
        ii.seqno AS position,
        ii.name AS column_name
    FROM pragma_index_list(:table, :schema) AS il
    JOIN pragma_index_info(il.name, :schema) AS ii
    ORDER BY il.name, ii.seqno
"""

_FOREIGN_KEYS_SQL = """
    SELECT id, seq, "table", "from", "to", on_update, on_delete
    FROM pragma_foreign_key_list(:table, :schema)
    ORDER BY id, seq
"""


def normalize_sqlite_url(database_url: str) -> str:
    """Rewrite a ``sqlite://`` URL to use the ``aiosqlite`` driver.

    Example:
        >>> normalize_sqlite_url("sqlite:///data/app.db")
        'sqlite+aiosqlite:///data/app.db'
    """
    if database_url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + database_url[len("sqlite://"):]
    return database_url


class AsyncSqliteConnector:
    """Async SQLite implementation of the ``DatabaseConnector`` protocol.

    SQLite has no server-side pool worth tuning, so the engine is created
    without the QueuePool defaults.  Foreign key enforcement is switched on
    for every new connection unless ``foreign_keys=False``.

    Args:
        database_url: ``sqlite:///path`` or ``sqlite+aiosqlite:///path``.
        connection_id: Identifier carried into diffs and sync runs.
        foreign_keys: Run ``PRAGMA foreign_keys=ON`` on connect.
        **engine_kwargs: Forwarded to ``create_async_engine``.
    """

    engine = DatabaseEngine.SQLITE

    def __init__(
        self,
        database_url: str,
        connection_id: str = "",
        foreign_keys: bool = True,
        **engine_kwargs: Any,
    ) -> None:
        self.connection_id = connection_id
        self.default_schema = "main"
        self._handle = EngineHandle(
            normalize_sqlite_url(database_url), connection_id, pooled=False, **engine_kwargs
        )
        if foreign_keys:
            event.listen(self._handle.engine.sync_engine, "connect", _enable_foreign_keys)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await self._handle.connect()

    async def disconnect(self) -> None:
        await self._handle.dispose()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> QueryResult:
        return await self._handle.query(sql, params)

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> ExecuteResult:
        return await self._handle.execute(sql, params)

    async def execute_batch(self, statements: Sequence[Statement]) -> int:
        return await self._handle.execute_batch(statements)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def get_schemas(self) -> list[str]:
        """Names of the attached databases (``main``, ``temp``, attachments)."""
        result = await self.query("SELECT name FROM pragma_database_list ORDER BY seq")
        return [row["name"] for row in result.rows]

    async def get_tables(self, schema: str | None = None) -> list[TableInfo]:
        schema = schema or self.default_schema
        master = f"{quote_identifier(self.engine, schema)}.sqlite_master"
        result = await self.query(
            f"SELECT name, type FROM {master} "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )
        return [
            TableInfo(schema_name=schema, name=row["name"], table_type=row["type"])
            for row in result.rows
        ]

    async def get_table_schema(self, schema: str, table: str) -> TableSchema:
        """Introspect one table from the pragma functions.

        Raises:
            TableNotFoundError: If the table has no columns.
        """
        params = {"schema": schema, "table": table}
        columns = await self.query(_COLUMNS_SQL, params)
        rows = IntrospectionRows(schema_name=schema, table=table, columns=columns.rows)
        if columns.rows:
            rows.indexes = (await self.query(_INDEXES_SQL, params)).rows
            rows.foreign_keys = (await self.query(_FOREIGN_KEYS_SQL, params)).rows
        return normalize(self.engine, rows)

    async def get_server_version(self) -> str:
        result = await self.query("SELECT sqlite_version() AS version")
        return str(result.rows[0]["version"])


def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
