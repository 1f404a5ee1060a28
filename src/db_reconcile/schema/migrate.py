"""Apply a schema diff's migration SQL and record the outcome.

Runs the statements from ``get_migration_sql()`` against the target via
``DatabaseConnector.execute()``, one at a time, stopping at the first
failure.  Every real (non-dry-run) attempt is handed to an optional
``MigrationHistoryRecorder`` for auditing; the library never reads the
history back.

Usage:
    from db_reconcile.schema.comparator import compare_schemas
    from db_reconcile.schema.migrate import JsonLinesHistoryRecorder, apply_migration

    diff = await compare_schemas(source, target)

    # 1. Preview
    preview = await apply_migration(target, diff)
    for sql in preview.statements:
        print(sql)

    # 2. Apply
    recorder = JsonLinesHistoryRecorder("migrations.jsonl")
    result = await apply_migration(target, diff, recorder, dry_run=False, confirm=True)
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from db_reconcile.errors import ReconcileError
from db_reconcile.schema.comparator import get_migration_sql
from db_reconcile.schema.models import SchemaDiff, SchemaDiffSummary

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Result and history models
# ------------------------------------------------------------------


class MigrationResult(BaseModel):
    """Result of applying a migration.

    Attributes:
        success: True if every statement ran (or nothing needed running).
        dry_run: True if statements were only listed.
        statements: Statements in execution order.
        executed: Number of statements that completed.
        error: Error message if a statement failed.
    """

    success: bool = False
    dry_run: bool = True
    statements: list[str] = Field(default_factory=list)
    executed: int = 0
    error: str | None = None


class MigrationRecord(BaseModel):
    """Audit entry handed to a ``MigrationHistoryRecorder``."""

    source_connection_id: str
    target_connection_id: str
    source_schema: str
    target_schema: str
    description: str = ""
    sql_statements: list[str] = Field(default_factory=list)
    summary: SchemaDiffSummary = Field(default_factory=SchemaDiffSummary)
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool = False
    error: str | None = None


class MigrationHistoryRecorder(Protocol):
    """Persists applied migrations."""

    async def record(self, record: MigrationRecord) -> None:
        ...


class JsonLinesHistoryRecorder:
    """Appends each migration record as one JSON line to a file.

    Example:
        recorder = JsonLinesHistoryRecorder("migrations.jsonl")
        await recorder.record(record)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def record(self, record: MigrationRecord) -> None:
        await asyncio.to_thread(self._append, record.model_dump_json())

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")


# ------------------------------------------------------------------
# Migration application
# ------------------------------------------------------------------


async def apply_migration(
    connector: "DatabaseConnector",
    diff: SchemaDiff,
    recorder: MigrationHistoryRecorder | None = None,
    description: str = "",
    dry_run: bool = True,
    confirm: bool = False,
) -> MigrationResult:
    """Apply a diff's migration SQL to the target connector.

    Args:
        connector: Target connector (the side the diff migrates).
        diff: Diff from ``compare_schemas()`` or ``diff_schemas()``.
        recorder: Optional history recorder, called after a real attempt
            whether it succeeded or not.
        description: Free-text description stored with the record.
        dry_run: If True, only report the statements.
        confirm: Must be True to actually execute (safety guard).

    Returns:
        ``MigrationResult`` with outcome.

    Example:
        result = await apply_migration(target, diff, dry_run=False, confirm=True)
        if not result.success:
            print(f"Stopped after {result.executed} statements: {result.error}")
    """
    statements = get_migration_sql(diff)
    result = MigrationResult(dry_run=dry_run, statements=statements)

    if not statements or dry_run:
        result.success = True
        return result

    if not confirm:
        result.error = "Migration requires confirm=True"
        return result

    try:
        for statement in statements:
            await connector.execute(statement)
            result.executed += 1
        result.success = True
        logger.info(
            "Applied %d migration statements to %s.%s",
            result.executed,
            diff.target_connection_id,
            diff.target_schema,
        )
    except ReconcileError as e:
        result.error = f"Statement {result.executed + 1} failed: {e}"
        logger.error("Migration to %s failed: %s", diff.target_connection_id, e)

    if recorder is not None:
        await recorder.record(
            MigrationRecord(
                source_connection_id=diff.source_connection_id,
                target_connection_id=diff.target_connection_id,
                source_schema=diff.source_schema,
                target_schema=diff.target_schema,
                description=description,
                sql_statements=statements,
                summary=diff.summary,
                success=result.success,
                error=result.error,
            )
        )

    return result
