"""db-reconcile: Cross-database schema diff, migration, and data sync.

Compares schemas and row data across PostgreSQL, MySQL/MariaDB and SQLite
through async connectors, emits ordered migration SQL, and reconciles
table rows in batches.

Usage:
    from db_reconcile import compare_schemas, get_migration_sql, apply_migration
    from db_reconcile import TableRowSource, SyncOptions, sync_table
    from db_reconcile import load_config, connector_session, get_profile
"""

__version__ = "0.1.0"

# Connectors
from db_reconcile.adapters import (
    AsyncMySQLConnector,
    AsyncPostgresConnector,
    AsyncSqliteConnector,
    DatabaseConnector,
    DatabaseEngine,
)

# Config
from db_reconcile.config import ConnectionProfile, ReconcileConfig, load_config

# Errors
from db_reconcile.errors import (
    BatchApplyError,
    DatabaseConnectionError,
    InvalidPrimaryKeyError,
    InvalidStateTransitionError,
    ReconcileError,
    SchemaNotFoundError,
    TableNotFoundError,
    TypeMismatchError,
)

# Factory
from db_reconcile.factory import (
    ProfileNotFoundError,
    connector_session,
    get_connector,
    get_profile,
    resolve_url,
)

# Schema
from db_reconcile.schema import (
    SchemaDiff,
    TableSchema,
    apply_migration,
    compare_schemas,
    diff_schemas,
    get_migration_sql,
)

# Sync
from db_reconcile.sync import (
    ListRowSource,
    SyncMode,
    SyncOptions,
    SyncRun,
    TableDataDiff,
    TableRowSource,
    get_table_data_diff,
    get_table_row_counts,
    sync_rows,
    sync_table,
)

# Validation
from db_reconcile.validation import QueryValidationResult, validate_query

__all__ = [
    # Connectors
    "DatabaseConnector",
    "DatabaseEngine",
    "AsyncPostgresConnector",
    "AsyncMySQLConnector",
    "AsyncSqliteConnector",
    # Config
    "load_config",
    "ConnectionProfile",
    "ReconcileConfig",
    # Errors
    "ReconcileError",
    "DatabaseConnectionError",
    "SchemaNotFoundError",
    "TableNotFoundError",
    "InvalidPrimaryKeyError",
    "TypeMismatchError",
    "BatchApplyError",
    "InvalidStateTransitionError",
    # Factory
    "get_connector",
    "get_profile",
    "connector_session",
    "resolve_url",
    "ProfileNotFoundError",
    # Schema
    "compare_schemas",
    "diff_schemas",
    "get_migration_sql",
    "apply_migration",
    "SchemaDiff",
    "TableSchema",
    # Sync
    "sync_table",
    "sync_rows",
    "get_table_data_diff",
    "get_table_row_counts",
    "SyncMode",
    "SyncOptions",
    "SyncRun",
    "TableDataDiff",
    "TableRowSource",
    "ListRowSource",
    # Validation
    "validate_query",
    "QueryValidationResult",
]
