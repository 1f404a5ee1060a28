"""Pydantic models for data sync runs.

- Options: SyncMode, SyncOptions
- Run state: SyncStatus, SyncRun
- Reporting: TableDataDiff
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from db_reconcile.errors import InvalidStateTransitionError


# ============================================================================
# Options
# ============================================================================


class SyncMode(str, Enum):
    """Conflict strategy for rows whose key already exists in the target."""

    INSERT = "insert"  # plain INSERT/UPDATE, conflicting keys fail the batch
    UPSERT = "upsert"  # insert-or-replace, idempotent


class SyncOptions(BaseModel):
    """Options for ``sync_table()``.

    Example:
        >>> options = SyncOptions(delete_extra=True, batch_size=500)
        >>> options.mode
        <SyncMode.UPSERT: 'upsert'>
    """

    insert_missing: bool = True
    update_different: bool = True
    delete_extra: bool = False
    mode: SyncMode = SyncMode.UPSERT
    batch_size: int = Field(default=1000, ge=1)
    continue_on_error: bool = False
    max_errors: int | None = Field(default=None, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=0.5, ge=0)


# ============================================================================
# Run State
# ============================================================================


class SyncStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = {SyncStatus.COMPLETED, SyncStatus.FAILED, SyncStatus.CANCELLED}


class SyncRun(BaseModel):
    """One reconciliation of a source table into a target table.

    Starts ``running`` and moves exactly once to ``completed``, ``failed``
    or ``cancelled``.  Counters, errors and statements only change through
    the methods below, and every method raises
    ``InvalidStateTransitionError`` once the run is terminal.

    Example:
        >>> run = SyncRun(source_table="users", target_table="users")
        >>> run.record_batch("insert", 2, ["INSERT ..."])
        >>> run.complete()
        >>> run.status, run.inserts
        (<SyncStatus.COMPLETED: 'completed'>, 2)
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    source_connection_id: str = ""
    source_schema: str | None = None
    source_table: str
    target_connection_id: str = ""
    target_schema: str | None = None
    target_table: str
    status: SyncStatus = SyncStatus.RUNNING
    inserts: int = 0
    updates: int = 0
    deletes: int = 0
    errors: list[str] = Field(default_factory=list)
    statements: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL

    @property
    def total_changes(self) -> int:
        return self.inserts + self.updates + self.deletes

    def _ensure_running(self) -> None:
        if self.is_terminal:
            raise InvalidStateTransitionError(
                f"Sync run {self.id} is already {self.status.value}"
            )

    def record_batch(self, operation: str, row_count: int, statements: list[str]) -> None:
        """Count a successfully applied batch."""
        self._ensure_running()
        if operation == "insert":
            self.inserts += row_count
        elif operation == "update":
            self.updates += row_count
        elif operation == "delete":
            self.deletes += row_count
        else:
            raise ValueError(f"Unknown sync operation: {operation}")
        self.statements.extend(statements)

    def add_error(self, message: str) -> None:
        self._ensure_running()
        self.errors.append(message)

    def _finish(self, status: SyncStatus) -> None:
        self._ensure_running()
        self.status = status
        self.completed_at = datetime.now(timezone.utc)

    def complete(self) -> None:
        """Finish the run: ``completed`` if error-free, else ``failed``."""
        self._finish(SyncStatus.FAILED if self.errors else SyncStatus.COMPLETED)

    def fail(self, message: str | None = None) -> None:
        if message:
            self.add_error(message)
        self._finish(SyncStatus.FAILED)

    def cancel(self) -> None:
        self._finish(SyncStatus.CANCELLED)


# ============================================================================
# Reporting
# ============================================================================


class TableDataDiff(BaseModel):
    """Row-count comparison of one table (read-only, no mutation).

    Example:
        >>> diff = TableDataDiff(table="users", source_count=3, target_count=2, missing_in_target=1)
        >>> diff.in_sync
        False
    """

    table: str
    schema_name: str | None = None
    source_count: int = 0
    target_count: int = 0
    missing_in_target: int = 0
    missing_in_source: int = 0
    different: int = 0

    @property
    def in_sync(self) -> bool:
        return not (self.missing_in_target or self.missing_in_source or self.different)
