"""Schema introspection, comparison, and migration.

Provides canonical schema extraction (``normalize``, ``SchemaIntrospector``),
structural comparison with ordered migration SQL (``compare_schemas``,
``diff_schemas``, ``get_migration_sql``), and applying a migration with an
optional history recorder (``apply_migration``).

Usage:
    from db_reconcile.schema import compare_schemas, get_migration_sql
    from db_reconcile.schema import apply_migration, JsonLinesHistoryRecorder
"""

from db_reconcile.schema.comparator import (
    compare_schemas,
    diff_schemas,
    get_migration_sql,
)
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.migrate import (
    JsonLinesHistoryRecorder,
    MigrationHistoryRecorder,
    MigrationRecord,
    MigrationResult,
    apply_migration,
)
from db_reconcile.schema.models import (
    ColumnInfo,
    DiffType,
    ForeignKeyInfo,
    IndexInfo,
    SchemaDiff,
    SchemaDiffItem,
    SchemaDiffSummary,
    TableInfo,
    TableSchema,
)
from db_reconcile.schema.normalizer import IntrospectionRows, normalize

__all__ = [
    "compare_schemas",
    "diff_schemas",
    "get_migration_sql",
    "SchemaIntrospector",
    "apply_migration",
    "MigrationResult",
    "MigrationRecord",
    "MigrationHistoryRecorder",
    "JsonLinesHistoryRecorder",
    "ColumnInfo",
    "IndexInfo",
    "ForeignKeyInfo",
    "TableSchema",
    "TableInfo",
    "DiffType",
    "SchemaDiffItem",
    "SchemaDiffSummary",
    "SchemaDiff",
    "IntrospectionRows",
    "normalize",
]
