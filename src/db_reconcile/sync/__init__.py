"""Row-level data diff and sync.

Usage:
    from db_reconcile.sync import TableRowSource, SyncOptions, sync_table
    from db_reconcile.sync import get_table_data_diff, sync_rows
"""

from db_reconcile.sync.engine import (
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table,
)
from db_reconcile.sync.models import (
    SyncMode,
    SyncOptions,
    SyncRun,
    SyncStatus,
    TableDataDiff,
)
from db_reconcile.sync.sources import ListRowSource, RowSource, TableRowSource

__all__ = [
    "sync_table",
    "sync_rows",
    "get_table_data_diff",
    "get_table_row_counts",
    "SyncMode",
    "SyncOptions",
    "SyncRun",
    "SyncStatus",
    "TableDataDiff",
    "RowSource",
    "ListRowSource",
    "TableRowSource",
]
