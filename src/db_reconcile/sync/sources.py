"""Row sources for the sync engine.

A ``RowSource`` yields dict rows and reports its column names.  The sync
engine streams both sides through this interface, so a table on a live
connector (``TableRowSource``) and an explicit list of rows
(``ListRowSource``) are interchangeable as the source side.

``TableRowSource`` reads in pages ordered by the key columns and retries
transient I/O failures per page before giving up.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol

from db_reconcile.errors import BatchApplyError, TransientIOError
from db_reconcile.schema.sql import qualified_table, quote_identifier

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector
    from db_reconcile.schema.models import TableSchema

logger = logging.getLogger(__name__)


class RowSource(Protocol):
    """Anything the sync engine can stream rows from."""

    connection_id: str
    schema_name: str | None
    table: str

    async def get_columns(self) -> list[str]:
        ...

    def iter_rows(self, order_by: list[str] | None = None) -> AsyncIterator[dict[str, Any]]:
        ...


class ListRowSource:
    """In-memory rows, e.g. rows selected by a user for a targeted sync.

    Example:
        source = ListRowSource([{"id": 1, "name": "a"}], table="users")
    """

    def __init__(
        self,
        rows: list[dict[str, Any]],
        columns: list[str] | None = None,
        table: str = "",
        schema_name: str | None = None,
        connection_id: str = "",
    ) -> None:
        self.rows = rows
        self.columns = columns if columns is not None else (list(rows[0]) if rows else [])
        self.table = table
        self.schema_name = schema_name
        self.connection_id = connection_id

    async def get_columns(self) -> list[str]:
        return list(self.columns)

    async def iter_rows(self, order_by: list[str] | None = None) -> AsyncIterator[dict[str, Any]]:
        for row in self.rows:
            yield row


class TableRowSource:
    """Rows of one table on a live connector, read page by page.

    Args:
        connector: Connected connector.
        table: Table name.
        schema_name: Schema (connector default if ``None``).
        page_size: Rows fetched per query.
        max_retries: Retries per page on ``TransientIOError``.
        retry_delay: Base delay in seconds; attempt ``n`` waits ``n * retry_delay``.

    Example:
        target = TableRowSource(connector, "users", "public")
        async for row in target.iter_rows(order_by=["id"]):
            ...
    """

    def __init__(
        self,
        connector: "DatabaseConnector",
        table: str,
        schema_name: str | None = None,
        page_size: int = 5000,
        max_retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self.connector = connector
        self.table = table
        self.schema_name = schema_name or connector.default_schema
        self.page_size = page_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._schema: "TableSchema | None" = None

    @property
    def connection_id(self) -> str:
        return self.connector.connection_id

    @property
    def qualified_name(self) -> str:
        return qualified_table(self.connector.engine, self.schema_name, self.table)

    async def get_table_schema(self) -> "TableSchema":
        if self._schema is None:
            self._schema = await self.connector.get_table_schema(self.schema_name, self.table)
        return self._schema

    async def get_columns(self) -> list[str]:
        return (await self.get_table_schema()).column_names

    async def count(self) -> int:
        """``COUNT(*)`` of the table."""
        result = await self.connector.query(
            f"SELECT COUNT(*) AS row_count FROM {self.qualified_name}"
        )
        return int(result.rows[0]["row_count"])

    async def iter_rows(self, order_by: list[str] | None = None) -> AsyncIterator[dict[str, Any]]:
        """Yield rows page by page.

        Args:
            order_by: Key columns to order by (the table's primary key if
                ``None``).  A stable order keeps LIMIT/OFFSET paging exact.

        Raises:
            BatchApplyError: If a page still fails after ``max_retries``.
        """
        order_by = order_by or (await self.get_table_schema()).primary_key
        order_sql = ""
        if order_by:
            engine = self.connector.engine
            order_sql = " ORDER BY " + ", ".join(quote_identifier(engine, c) for c in order_by)
        sql = f"SELECT * FROM {self.qualified_name}{order_sql} LIMIT :limit OFFSET :offset"

        page = 0
        while True:
            params = {"limit": self.page_size, "offset": page * self.page_size}
            result = await self._fetch_page(sql, params, page)
            for row in result:
                yield row
            if len(result) < self.page_size:
                return
            page += 1

    async def _fetch_page(self, sql: str, params: dict[str, Any], page: int) -> list[dict[str, Any]]:
        attempt = 0
        while True:
            try:
                return (await self.connector.query(sql, params)).rows
            except TransientIOError as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise BatchApplyError("read", page, e) from e
                logger.warning(
                    "Transient error reading %s page %d (attempt %d/%d): %s",
                    self.qualified_name,
                    page + 1,
                    attempt,
                    self.max_retries,
                    e,
                )
                await asyncio.sleep(self.retry_delay * attempt)
