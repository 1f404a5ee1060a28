"""Tests for applying migration SQL and recording history."""

import json
from unittest.mock import AsyncMock

import pytest

from db_reconcile.adapters.base import ExecuteResult
from db_reconcile.errors import QueryExecutionError
from db_reconcile.schema.migrate import (
    JsonLinesHistoryRecorder,
    MigrationRecord,
    apply_migration,
)
from db_reconcile.schema.models import DiffType, SchemaDiff, SchemaDiffItem


def _make_diff(*statements: str) -> SchemaDiff:
    return SchemaDiff(
        source_connection_id="src",
        target_connection_id="dst",
        source_schema="main",
        target_schema="main",
        items=[
            SchemaDiffItem(
                type=DiffType.COLUMN_ADDED,
                schema_name="main",
                table="orders",
                name=f"c{i}",
                migration_sql=[sql],
            )
            for i, sql in enumerate(statements)
        ],
    )


class TestApplyMigration:
    """apply_migration guards, execution and recording."""

    @pytest.mark.asyncio
    async def test_dry_run_lists_statements(self):
        """Dry run executes nothing and records nothing."""
        connector = AsyncMock()
        recorder = AsyncMock()
        result = await apply_migration(connector, _make_diff("S1;", "S2;"), recorder)

        assert result.success and result.dry_run
        assert result.statements == ["S1;", "S2;"]
        connector.execute.assert_not_called()
        recorder.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_confirm(self):
        """Without confirm=True nothing runs."""
        connector = AsyncMock()
        result = await apply_migration(connector, _make_diff("S1;"), dry_run=False)

        assert not result.success
        assert result.error == "Migration requires confirm=True"
        connector.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_diff_succeeds(self):
        """No statements means nothing to do."""
        connector = AsyncMock()
        result = await apply_migration(connector, _make_diff(), dry_run=False, confirm=True)
        assert result.success
        assert result.executed == 0

    @pytest.mark.asyncio
    async def test_applies_and_records(self):
        """Statements run in order and a success record is written."""
        connector = AsyncMock()
        connector.execute.return_value = ExecuteResult()
        recorder = AsyncMock()

        result = await apply_migration(
            connector, _make_diff("S1;", "S2;"), recorder,
            description="add columns", dry_run=False, confirm=True,
        )

        assert result.success
        assert result.executed == 2
        assert [c.args[0] for c in connector.execute.await_args_list] == ["S1;", "S2;"]
        record = recorder.record.await_args.args[0]
        assert isinstance(record, MigrationRecord)
        assert record.success
        assert record.description == "add columns"
        assert record.summary.columns_added == 2

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self):
        """A failing statement stops the run and is recorded as failed."""
        connector = AsyncMock()
        connector.execute.side_effect = [ExecuteResult(), QueryExecutionError("boom")]
        recorder = AsyncMock()

        result = await apply_migration(
            connector, _make_diff("S1;", "S2;", "S3;"), recorder, dry_run=False, confirm=True,
        )

        assert not result.success
        assert result.executed == 1
        assert result.error == "Statement 2 failed: boom"
        assert connector.execute.await_count == 2
        assert recorder.record.await_args.args[0].success is False


class TestJsonLinesHistoryRecorder:
    """Records are appended as JSON lines."""

    @pytest.mark.asyncio
    async def test_appends_lines(self, tmp_path):
        """Each record becomes one parseable line."""
        path = tmp_path / "history" / "migrations.jsonl"
        recorder = JsonLinesHistoryRecorder(path)
        for success in (True, False):
            await recorder.record(
                MigrationRecord(
                    source_connection_id="src",
                    target_connection_id="dst",
                    source_schema="main",
                    target_schema="main",
                    sql_statements=["S1;"],
                    success=success,
                )
            )

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["sql_statements"] == ["S1;"]
        assert json.loads(lines[1])["success"] is False
