"""Tests for paged row reading."""

from unittest.mock import AsyncMock

import pytest

from db_reconcile.adapters.base import DatabaseEngine, QueryResult
from db_reconcile.errors import BatchApplyError, TransientIOError
from db_reconcile.sync.sources import ListRowSource, TableRowSource


def _make_mock_connector(*pages):
    connector = AsyncMock()
    connector.engine = DatabaseEngine.POSTGRES
    connector.connection_id = "db"
    connector.default_schema = "public"
    connector.query.side_effect = [QueryResult(rows=page) for page in pages]
    return connector


async def _collect(source, order_by=None):
    return [row async for row in source.iter_rows(order_by=order_by)]


class TestTableRowSource:
    """LIMIT/OFFSET paging ordered by key."""

    @pytest.mark.asyncio
    async def test_reads_until_short_page(self):
        """Paging stops at the first page shorter than page_size."""
        connector = _make_mock_connector([{"id": 1}, {"id": 2}], [{"id": 3}])
        source = TableRowSource(connector, "users", page_size=2)

        rows = await _collect(source, ["id"])

        assert [r["id"] for r in rows] == [1, 2, 3]
        first, second = connector.query.await_args_list
        assert first.args[0] == (
            'SELECT * FROM "public"."users" ORDER BY "id" LIMIT :limit OFFSET :offset'
        )
        assert first.args[1] == {"limit": 2, "offset": 0}
        assert second.args[1] == {"limit": 2, "offset": 2}

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        """A transient page failure is retried."""
        connector = _make_mock_connector()
        connector.query.side_effect = [TransientIOError("reset"), QueryResult(rows=[{"id": 1}])]
        source = TableRowSource(connector, "users", retry_delay=0)

        assert await _collect(source, ["id"]) == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        """Exhausted retries raise BatchApplyError for the page."""
        connector = _make_mock_connector()
        connector.query.side_effect = TransientIOError("reset")
        source = TableRowSource(connector, "users", max_retries=2, retry_delay=0)

        with pytest.raises(BatchApplyError) as exc_info:
            await _collect(source, ["id"])

        assert exc_info.value.operation == "read"
        assert connector.query.await_count == 3

    @pytest.mark.asyncio
    async def test_count(self):
        """count() runs COUNT(*)."""
        connector = _make_mock_connector([{"row_count": 7}])
        assert await TableRowSource(connector, "users").count() == 7


class TestListRowSource:
    """In-memory rows."""

    @pytest.mark.asyncio
    async def test_columns_default_to_first_row(self):
        """Columns come from the first row when not given."""
        source = ListRowSource([{"id": 1, "name": "a"}])
        assert await source.get_columns() == ["id", "name"]
        assert await _collect(source) == [{"id": 1, "name": "a"}]
