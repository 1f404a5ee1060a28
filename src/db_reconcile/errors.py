"""Exception hierarchy for schema comparison and data sync.

Structural and validation errors (unknown schema, bad primary keys) are
raised and abort the whole operation.  Per-batch failures during a sync
are wrapped in ``BatchApplyError`` and accumulated on the ``SyncRun``
instead of propagating.

Usage:
    from db_reconcile.errors import ReconcileError, SchemaNotFoundError

    try:
        diff = await compare_schemas(source, target, "public", "public")
    except SchemaNotFoundError as e:
        print(f"Unknown schema: {e.schema_name}")
"""


class ReconcileError(Exception):
    """Base class for all db-reconcile errors."""


class DatabaseConnectionError(ReconcileError, ConnectionError):
    """Raised when a connector cannot reach its database."""


class QueryExecutionError(ReconcileError):
    """Raised when the database rejects a statement (non-transient)."""


class TransientIOError(ReconcileError):
    """Raised on a recoverable I/O failure (dropped or invalidated connection)."""


class NotFoundError(ReconcileError):
    """Raised when a requested database object does not exist."""


class SchemaNotFoundError(NotFoundError):
    """Raised when a schema name is not present on a connection."""

    def __init__(self, schema_name: str, connection_id: str = "") -> None:
        self.schema_name = schema_name
        self.connection_id = connection_id
        where = f" on connection '{connection_id}'" if connection_id else ""
        super().__init__(f"Schema '{schema_name}' not found{where}")


class TableNotFoundError(NotFoundError):
    """Raised when introspection returns no columns for a table."""

    def __init__(self, schema_name: str | None, table: str) -> None:
        self.schema_name = schema_name
        self.table = table
        qualified = f"{schema_name}.{table}" if schema_name else table
        super().__init__(f"Table '{qualified}' not found")


class InvalidPrimaryKeyError(ReconcileError, ValueError):
    """Raised when sync key columns are empty or missing on either side."""


class TypeMismatchError(ReconcileError):
    """Raised when a column type cannot be mapped between two engines."""

    def __init__(self, column: str, source_type: str, target_type: str) -> None:
        self.column = column
        self.source_type = source_type
        self.target_type = target_type
        super().__init__(
            f"Cannot compare types for column '{column}': "
            f"{source_type!r} vs {target_type!r}"
        )


class BatchApplyError(ReconcileError):
    """Raised when one sync batch fails to apply.

    Attributes:
        operation: ``insert``, ``update``, ``delete`` or ``read``.
        batch_index: Zero-based index of the batch within its operation.
        cause: The underlying exception.
    """

    def __init__(self, operation: str, batch_index: int, cause: Exception) -> None:
        self.operation = operation
        self.batch_index = batch_index
        self.cause = cause
        super().__init__(f"{operation} batch {batch_index + 1} failed: {cause}")


class InvalidStateTransitionError(ReconcileError):
    """Raised when a terminal ``SyncRun`` is mutated."""
