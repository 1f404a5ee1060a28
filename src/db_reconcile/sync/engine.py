"""Row-level data diff and sync between a source and a target table.

Reconciliation is split into two steps:

1. **Classify** -- index the target as ``key -> content digest``, then
   stream the source and keep only rows that need a mutation.  Leftover
   target keys are rows missing from the source.
2. **Apply** -- inserts, then updates, then deletes, in batches of
   ``batch_size``.  Each batch runs as one transaction on the target
   connector.  Transient I/O errors are retried; other failures are
   recorded on the ``SyncRun`` and abort the run unless
   ``continue_on_error`` is set.

Usage:
    from db_reconcile.sync import SyncOptions, TableRowSource, sync_table

    source = TableRowSource(source_connector, "users", "public")
    target = TableRowSource(target_connector, "users", "public")

    run = await sync_table(source, target, ["id"], SyncOptions(delete_extra=True))
    print(run.status, run.inserts, run.updates, run.deletes)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from db_reconcile.adapters.base import Statement
from db_reconcile.errors import (
    BatchApplyError,
    InvalidPrimaryKeyError,
    QueryExecutionError,
    ReconcileError,
    TransientIOError,
)
from db_reconcile.sync.keys import RowKey, row_digest, row_key
from db_reconcile.sync.models import SyncMode, SyncOptions, SyncRun, TableDataDiff
from db_reconcile.sync.sources import ListRowSource, RowSource, TableRowSource
from db_reconcile.sync.statements import (
    delete_statements,
    insert_statements,
    update_statements,
)

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


@dataclass
class _Classification:
    """Rows needing mutation, plus counts for reporting."""

    inserts: list[dict[str, Any]] = field(default_factory=list)
    updates: list[dict[str, Any]] = field(default_factory=list)
    deletes: list[tuple[Any, ...]] = field(default_factory=list)
    source_count: int = 0
    target_count: int = 0
    missing_in_target: int = 0
    missing_in_source: int = 0
    different: int = 0


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


async def _validate_primary_keys(
    source: RowSource, target: RowSource, primary_keys: list[str]
) -> list[str]:
    """Check key columns exist on both sides.

    Returns:
        Columns present on both sides, in source order.

    Raises:
        InvalidPrimaryKeyError: If no keys are given or a key is missing.
    """
    if not primary_keys:
        raise InvalidPrimaryKeyError("At least one primary key column is required")

    source_columns = await source.get_columns()
    target_columns = await target.get_columns()
    for side, rows, columns in (
        ("source", source, source_columns),
        ("target", target, target_columns),
    ):
        missing = [k for k in primary_keys if k not in columns]
        if missing:
            raise InvalidPrimaryKeyError(
                f"Primary key column(s) {', '.join(missing)} not found in "
                f"{side} table '{rows.table}'"
            )

    return [c for c in source_columns if c in target_columns]


async def _classify(
    source: RowSource,
    target: RowSource,
    primary_keys: list[str],
    columns: list[str],
    options: SyncOptions,
    collect_rows: bool = True,
) -> _Classification:
    """Bucket every key into insert, update or delete (at most one each)."""
    compare_columns = [c for c in columns if c not in primary_keys]
    result = _Classification()

    # key -> (digest, raw key values as read from the target)
    target_index: dict[RowKey, tuple[str, tuple[Any, ...]]] = {}
    async for row in target.iter_rows(order_by=primary_keys):
        raw_key = tuple(row[k] for k in primary_keys)
        target_index[row_key(row, primary_keys)] = (row_digest(row, compare_columns), raw_key)
    result.target_count = len(target_index)

    seen: set[RowKey] = set()
    async for row in source.iter_rows(order_by=primary_keys):
        key = row_key(row, primary_keys)
        if key in seen:
            logger.warning("Duplicate source key %r in %s skipped", key, source.table)
            continue
        seen.add(key)
        result.source_count += 1

        entry = target_index.pop(key, None)
        if entry is None:
            result.missing_in_target += 1
            if options.insert_missing and collect_rows:
                result.inserts.append({c: row.get(c) for c in columns})
        elif entry[0] != row_digest(row, compare_columns):
            result.different += 1
            if options.update_different and collect_rows:
                result.updates.append({c: row.get(c) for c in columns})

    # Whatever is left exists only in the target
    result.missing_in_source = len(target_index)
    if options.delete_extra and collect_rows:
        result.deletes = [raw for _, raw in target_index.values()]

    return result


# ------------------------------------------------------------------
# Batch application
# ------------------------------------------------------------------


class _BatchApplier:
    """Applies one operation's rows in batches and updates the run."""

    def __init__(
        self,
        run: SyncRun,
        target: TableRowSource,
        options: SyncOptions,
        cancel: asyncio.Event | None,
    ) -> None:
        self.run = run
        self.target = target
        self.options = options
        self.cancel = cancel

    async def apply(
        self,
        operation: str,
        items: list,
        build: Callable[[list], list[Statement]],
    ) -> bool:
        """Apply ``items`` in batches.

        Returns:
            False if the run was cancelled or aborted and no further
            operations should start.
        """
        batch_size = self.options.batch_size
        for index, start in enumerate(range(0, len(items), batch_size)):
            if self.cancel is not None and self.cancel.is_set():
                logger.info("Sync run %s cancelled before %s batch %d", self.run.id, operation, index + 1)
                self.run.cancel()
                return False

            batch = items[start : start + batch_size]
            statements = build(batch)
            try:
                await self._execute(statements, operation, index)
            except BatchApplyError as e:
                logger.warning("Sync run %s: %s", self.run.id, e)
                self.run.add_error(str(e))
                if not self.options.continue_on_error or self._too_many_errors():
                    self.run.fail()
                    return False
                continue

            self.run.record_batch(operation, len(batch), [s.sql for s in statements])
            logger.debug(
                "Sync run %s: %s batch %d applied (%d rows)",
                self.run.id,
                operation,
                index + 1,
                len(batch),
            )
        return True

    def _too_many_errors(self) -> bool:
        max_errors = self.options.max_errors
        return max_errors is not None and len(self.run.errors) > max_errors

    async def _execute(self, statements: list[Statement], operation: str, index: int) -> int:
        attempt = 0
        while True:
            try:
                return await self.target.connector.execute_batch(statements)
            except TransientIOError as e:
                attempt += 1
                if attempt > self.options.max_retries:
                    raise BatchApplyError(operation, index, e) from e
                logger.warning(
                    "Transient error on %s batch %d (attempt %d/%d): %s",
                    operation,
                    index + 1,
                    attempt,
                    self.options.max_retries,
                    e,
                )
                await asyncio.sleep(self.options.retry_delay * attempt)
            except QueryExecutionError as e:
                raise BatchApplyError(operation, index, e) from e


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


async def sync_table(
    source: RowSource,
    target: TableRowSource,
    primary_keys: list[str],
    options: SyncOptions | None = None,
    *,
    cancel: asyncio.Event | None = None,
) -> SyncRun:
    """Reconcile the target table toward the source rows.

    Args:
        source: Rows of the desired state.
        target: Table to mutate.
        primary_keys: Columns identifying a row on both sides.
        options: Flags, conflict mode, batch size and error policy.
        cancel: Set to stop the run before its next batch.

    Returns:
        A terminal ``SyncRun``: ``completed`` when no batch failed,
        ``failed`` otherwise, ``cancelled`` if ``cancel`` was set.

    Raises:
        InvalidPrimaryKeyError: Before any row is read, if the keys are
            empty or missing on either side.
    """
    options = options or SyncOptions()
    columns = await _validate_primary_keys(source, target, primary_keys)

    run = SyncRun(
        source_connection_id=source.connection_id,
        source_schema=source.schema_name,
        source_table=source.table,
        target_connection_id=target.connection_id,
        target_schema=target.schema_name,
        target_table=target.table,
    )
    logger.info(
        "Sync run %s started: %s -> %s (mode=%s)",
        run.id,
        source.table or "<rows>",
        target.qualified_name,
        options.mode.value,
    )

    try:
        plan = await _classify(source, target, primary_keys, columns, options)
    except BatchApplyError as e:
        run.fail(str(e))
        logger.error("Sync run %s failed while reading rows: %s", run.id, e)
        return run

    engine, schema, table = target.connector.engine, target.schema_name, target.table
    upsert = options.mode is SyncMode.UPSERT

    def build_inserts(batch: list) -> list[Statement]:
        return insert_statements(engine, schema, table, columns, batch, primary_keys, upsert)

    def build_updates(batch: list) -> list[Statement]:
        if upsert:
            return insert_statements(engine, schema, table, columns, batch, primary_keys, True)
        return update_statements(engine, schema, table, columns, batch, primary_keys)

    def build_deletes(batch: list) -> list[Statement]:
        return delete_statements(engine, schema, table, batch, primary_keys)

    applier = _BatchApplier(run, target, options, cancel)
    if (
        await applier.apply("insert", plan.inserts, build_inserts)
        and await applier.apply("update", plan.updates, build_updates)
        and await applier.apply("delete", plan.deletes, build_deletes)
    ):
        run.complete()

    logger.info(
        "Sync run %s %s: %d inserts, %d updates, %d deletes, %d errors",
        run.id,
        run.status.value,
        run.inserts,
        run.updates,
        run.deletes,
        len(run.errors),
    )
    return run


async def sync_rows(
    rows: list[dict[str, Any]],
    target: TableRowSource,
    primary_keys: list[str],
    mode: SyncMode = SyncMode.UPSERT,
    batch_size: int = 1000,
    *,
    cancel: asyncio.Event | None = None,
) -> SyncRun:
    """Reconcile an explicit list of rows into the target table.

    Rows missing from the target are inserted.  Rows already present are
    updated in ``upsert`` mode and left alone in ``insert`` mode.  Nothing
    is deleted.
    """
    columns = list(rows[0]) if rows else await target.get_columns()
    options = SyncOptions(
        insert_missing=True,
        update_different=mode is SyncMode.UPSERT,
        delete_extra=False,
        mode=mode,
        batch_size=batch_size,
    )
    source = ListRowSource(rows, columns=columns, table=target.table)
    return await sync_table(source, target, primary_keys, options, cancel=cancel)


async def get_table_data_diff(
    source: RowSource,
    target: RowSource,
    primary_keys: list[str],
) -> TableDataDiff:
    """Count row differences between two tables without changing anything.

    Raises:
        InvalidPrimaryKeyError: If the keys are empty or missing on either side.
    """
    columns = await _validate_primary_keys(source, target, primary_keys)
    counts = await _classify(
        source, target, primary_keys, columns, SyncOptions(), collect_rows=False
    )
    return TableDataDiff(
        table=target.table,
        schema_name=target.schema_name,
        source_count=counts.source_count,
        target_count=counts.target_count,
        missing_in_target=counts.missing_in_target,
        missing_in_source=counts.missing_in_source,
        different=counts.different,
    )


async def get_table_row_counts(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    schema: str | None = None,
    target_schema: str | None = None,
) -> list[TableDataDiff]:
    """Compare ``COUNT(*)`` for every base table of the source schema.

    A quick status view: ``missing_in_target`` and ``missing_in_source``
    are count differences, not key comparisons.  Tables that cannot be
    counted on either side are logged and skipped.
    """
    schema = schema or source.default_schema
    target_schema = target_schema or target.default_schema

    results = []
    for info in await source.get_tables(schema):
        if info.table_type != "table":
            continue
        try:
            source_count = await TableRowSource(source, info.name, schema).count()
            target_count = await TableRowSource(target, info.name, target_schema).count()
        except ReconcileError as e:
            logger.warning("Skipping row count for %s: %s", info.name, e)
            continue

        results.append(
            TableDataDiff(
                table=info.name,
                schema_name=schema,
                source_count=source_count,
                target_count=target_count,
                missing_in_target=max(0, source_count - target_count),
                missing_in_source=max(0, target_count - source_count),
            )
        )
    return results
