"""Structural schema diff with ordered migration SQL.

Compares a source schema (the desired state) with a target schema and
emits one ``SchemaDiffItem`` per difference, each carrying the SQL that
moves the target toward the source.  ``diff_schemas`` is pure logic over
already-introspected tables; ``compare_schemas`` introspects two live
connectors first.

Items are emitted in a fixed phase order so the flattened SQL runs in one
pass without tripping over foreign keys:

1. table creations (parents before children)
2. column additions
3. index/FK drops on surviving tables (changed ones are dropped here)
4. column modifications
5. column drops
6. index/FK creations (changed ones are recreated here)
7. FK drops for removed tables
8. table drops (children before parents)

A single-column unique index is the column's ``is_unique`` flag: it is
reconciled by the column item, never as an index item.

Usage:
    from db_reconcile.schema.comparator import compare_schemas, get_migration_sql

    diff = await compare_schemas(source, target, "public", "public")
    print(diff.format_report())
    for sql in get_migration_sql(diff):
        print(sql)
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING

from db_reconcile.adapters.base import DatabaseEngine
from db_reconcile.errors import SchemaNotFoundError, TypeMismatchError
from db_reconcile.schema import sql
from db_reconcile.schema.introspector import SchemaIntrospector
from db_reconcile.schema.models import (
    ColumnInfo,
    DiffType,
    ForeignKeyInfo,
    IndexInfo,
    SchemaDiff,
    SchemaDiffItem,
    TableSchema,
)
from db_reconcile.schema.types import translate_type, types_equal

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


class _Phase(IntEnum):
    CREATE_TABLES = 1
    ADD_COLUMNS = 2
    DROP_CHANGED = 3
    MODIFY_COLUMNS = 4
    DROP_COLUMNS = 5
    CREATE_INDEXES = 6
    DROP_REMOVED_FKS = 7
    DROP_TABLES = 8


@dataclass
class _DiffContext:
    """Engines and schemas for one comparison, plus the collected items."""

    source_engine: DatabaseEngine
    target_engine: DatabaseEngine
    source_schema: str
    target_schema: str
    entries: list[tuple[_Phase, SchemaDiffItem]] = field(default_factory=list)

    @property
    def sqlite_target(self) -> bool:
        return self.target_engine is DatabaseEngine.SQLITE

    def add(self, phase: _Phase, item: SchemaDiffItem) -> None:
        self.entries.append((phase, item))

    def add_rebuild(self, item: SchemaDiffItem, drop: list[str], create: list[str]) -> None:
        """File a changed index or FK as a drop in phase 3 and a create in phase 6.

        Both entries describe the same element; ``SchemaDiffSummary``
        counts it once.
        """
        self.add(
            _Phase.DROP_CHANGED,
            item.model_copy(
                update={
                    "migration_sql": drop,
                    "notes": [*item.notes, "Recreated after column changes"],
                }
            ),
        )
        self.add(_Phase.CREATE_INDEXES, item.model_copy(update={"migration_sql": create}))

    def ordered_items(self) -> list[SchemaDiffItem]:
        # sorted() is stable, so items keep discovery order within a phase
        return [item for _, item in sorted(self.entries, key=lambda e: e[0])]

    def referenced_schema(self, fk: ForeignKeyInfo) -> str:
        """Schema a source FK should reference on the target side."""
        if fk.referenced_schema in (None, self.source_schema):
            return self.target_schema
        return fk.referenced_schema

    def desired_column(self, column: ColumnInfo, notes: list[str]) -> ColumnInfo:
        """Source column with its type spelled for the target engine."""
        data_type = translate_type(column.data_type, self.source_engine, self.target_engine)
        if data_type is None:
            notes.append(
                f"Type {column.data_type!r} of column '{column.name}' has no "
                f"{self.target_engine.value} equivalent; used verbatim"
            )
            return column
        return column.model_copy(update={"data_type": data_type})

    def item(
        self,
        diff_type: DiffType,
        table: str,
        name: str | None = None,
        source: object = None,
        target: object = None,
        migration_sql: list[str] | None = None,
        notes: list[str] | None = None,
    ) -> SchemaDiffItem:
        return SchemaDiffItem(
            type=diff_type,
            schema_name=self.target_schema,
            table=table,
            name=name,
            source=source.model_dump() if source is not None else None,
            target=target.model_dump() if target is not None else None,
            migration_sql=migration_sql or [],
            notes=notes or [],
        )


# ------------------------------------------------------------------
# Dependency ordering
# ------------------------------------------------------------------


def _fk_dependencies(tables: list[TableSchema]) -> dict[str, set[str]]:
    """Map each table to the tables it references (self-references dropped)."""
    return {
        t.name: {fk.referenced_table for fk in t.foreign_keys if fk.referenced_table != t.name}
        for t in tables
    }


def _topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on FK dependencies.

    Returns tables in forward order: parent tables first, child tables last.
    Cycles are broken by emitting the table at the point the cycle closes.

    Example:
        >>> _topological_sort({"books": {"authors"}, "authors": set()}, ["books", "authors"])
        ['authors', 'books']
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(table: str) -> None:
        if table in visited or table in visiting:
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set())):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


# ------------------------------------------------------------------
# Column uniqueness
# ------------------------------------------------------------------


def _is_uniqueness_index(index: IndexInfo) -> bool:
    return index.is_unique and not index.is_primary and len(index.columns) == 1


def _uniqueness_indexes(table: TableSchema, column: str) -> list[IndexInfo]:
    return [i for i in table.indexes if _is_uniqueness_index(i) and i.columns == [column]]


def _unique_index_for(table: TableSchema, column: str) -> IndexInfo:
    """Source index carrying a column's uniqueness, or a ``<table>_<column>_key`` one.

    SQLite UNIQUE constraints have no index visible here, so the name is
    generated for them.
    """
    existing = _uniqueness_indexes(table, column)
    if existing:
        return existing[0]
    return IndexInfo(name=f"{table.name}_{column}_key", columns=[column], is_unique=True)


# ------------------------------------------------------------------
# Table-level diff
# ------------------------------------------------------------------


def _add_tables(ctx: _DiffContext, tables: list[TableSchema]) -> None:
    by_name = {t.name: t for t in tables}
    order = _topological_sort(_fk_dependencies(tables), sorted(by_name))
    engine, schema = ctx.target_engine, ctx.target_schema

    for name in order:
        table = by_name[name]
        notes: list[str] = []
        desired = table.model_copy(
            update={"columns": [ctx.desired_column(c, notes) for c in table.columns]}
        )
        inline = None
        if ctx.sqlite_target:
            inline = [(fk, ctx.referenced_schema(fk)) for fk in table.foreign_keys]

        statements = [sql.create_table(engine, schema, desired, inline)]
        statements += [
            sql.create_index(engine, schema, name, index)
            for index in table.indexes
            if not index.is_primary
        ]
        statements += [
            sql.create_index(engine, schema, name, _unique_index_for(table, c.name))
            for c in table.columns
            if c.is_unique and not _uniqueness_indexes(table, c.name)
        ]
        ctx.add(
            _Phase.CREATE_TABLES,
            ctx.item(DiffType.TABLE_ADDED, name, source=table, migration_sql=statements, notes=notes),
        )

        # Constraints are added once every new table exists
        if not ctx.sqlite_target:
            for fk in table.foreign_keys:
                ctx.add(
                    _Phase.CREATE_INDEXES,
                    ctx.item(
                        DiffType.FK_ADDED,
                        name,
                        fk.name,
                        source=fk,
                        migration_sql=[
                            sql.add_foreign_key(engine, schema, name, fk, ctx.referenced_schema(fk))
                        ],
                    ),
                )


def _remove_tables(ctx: _DiffContext, tables: list[TableSchema]) -> None:
    by_name = {t.name: t for t in tables}
    order = _topological_sort(_fk_dependencies(tables), sorted(by_name))
    engine, schema = ctx.target_engine, ctx.target_schema

    for name in reversed(order):
        table = by_name[name]
        if not ctx.sqlite_target:
            for fk in table.foreign_keys:
                ctx.add(
                    _Phase.DROP_REMOVED_FKS,
                    ctx.item(
                        DiffType.FK_REMOVED,
                        name,
                        fk.name,
                        target=fk,
                        migration_sql=[sql.drop_foreign_key(engine, schema, name, fk.name)],
                    ),
                )
        ctx.add(
            _Phase.DROP_TABLES,
            ctx.item(
                DiffType.TABLE_REMOVED,
                name,
                target=table,
                migration_sql=[sql.drop_table(engine, schema, name)],
            ),
        )


# ------------------------------------------------------------------
# Member-level diff for tables present on both sides
# ------------------------------------------------------------------


def _changed_attributes(
    ctx: _DiffContext, source: ColumnInfo, target: ColumnInfo, notes: list[str]
) -> tuple[list[str], bool]:
    """Attributes that differ, and whether the type comparison failed."""
    changed: list[str] = []
    mismatch = False
    try:
        if not types_equal(
            source.name, source.data_type, target.data_type, ctx.source_engine, ctx.target_engine
        ):
            changed.append("data_type")
    except TypeMismatchError as e:
        changed.append("data_type")
        notes.append(str(e))
        mismatch = True

    if source.nullable != target.nullable:
        changed.append("nullable")
    if source.default_value != target.default_value:
        changed.append("default_value")
    if source.is_unique != target.is_unique:
        changed.append("is_unique")
    return changed, mismatch


def _diff_columns(ctx: _DiffContext, source: TableSchema, target: TableSchema) -> None:
    engine, schema, table = ctx.target_engine, ctx.target_schema, source.name
    target_columns = {c.name: c for c in target.columns}
    source_names = set(source.column_names)

    for column in source.columns:
        current = target_columns.get(column.name)
        notes: list[str] = []

        if current is None:
            desired = ctx.desired_column(column, notes)
            statements = [sql.add_column(engine, schema, table, desired)]
            if column.is_unique:
                statements.append(
                    sql.create_index(engine, schema, table, _unique_index_for(source, column.name))
                )
            if not column.nullable and column.default_value is None:
                if ctx.sqlite_target:
                    notes.append("SQLite rejects adding a NOT NULL column without default")
                else:
                    notes.append("NOT NULL column without default fails on a non-empty table")
            ctx.add(
                _Phase.ADD_COLUMNS,
                ctx.item(
                    DiffType.COLUMN_ADDED,
                    table,
                    column.name,
                    source=column,
                    migration_sql=statements,
                    notes=notes,
                ),
            )
            continue

        changed, mismatch = _changed_attributes(ctx, column, current, notes)
        if not changed:
            continue

        sql_changes = [a for a in changed if a != "is_unique" and not (mismatch and a == "data_type")]
        if ctx.sqlite_target and sql_changes:
            notes.append("SQLite cannot alter columns in place; rebuild the table to apply")

        desired = ctx.desired_column(column, notes) if not mismatch else column
        statements = sql.alter_column(engine, schema, table, desired, current, sql_changes)
        if "is_unique" in changed:
            statements = _uniqueness_sql(ctx, source, target, column, statements, notes)
        ctx.add(
            _Phase.MODIFY_COLUMNS,
            ctx.item(
                DiffType.COLUMN_MODIFIED,
                table,
                column.name,
                source=column,
                target=current,
                migration_sql=statements,
                notes=notes,
            ),
        )

    for column in target.columns:
        if column.name not in source_names:
            ctx.add(
                _Phase.DROP_COLUMNS,
                ctx.item(
                    DiffType.COLUMN_REMOVED,
                    table,
                    column.name,
                    target=column,
                    migration_sql=[sql.drop_column(engine, schema, table, column.name)],
                ),
            )


def _uniqueness_sql(
    ctx: _DiffContext,
    source: TableSchema,
    target: TableSchema,
    column: ColumnInfo,
    alterations: list[str],
    notes: list[str],
) -> list[str]:
    """Wrap a column's ALTER statements with its uniqueness change.

    Unique indexes are dropped before the alterations and created after
    them, so a type change never runs against a stale index.
    """
    engine, schema, table = ctx.target_engine, ctx.target_schema, source.name
    if column.is_unique:
        index = _unique_index_for(source, column.name)
        return alterations + [sql.create_index(engine, schema, table, index)]

    existing = _uniqueness_indexes(target, column.name)
    if not existing:
        notes.append("UNIQUE constraint is part of the table definition; rebuild the table to apply")
    drops = [s for index in existing for s in sql.drop_unique(engine, schema, table, index.name)]
    return drops + alterations


def _index_signature(index: IndexInfo) -> tuple:
    return (tuple(index.columns), index.is_unique, index.index_type.lower())


def _diff_indexes(ctx: _DiffContext, source: TableSchema, target: TableSchema) -> None:
    engine, schema, table = ctx.target_engine, ctx.target_schema, source.name
    source_indexes = {
        i.name: i for i in source.indexes if not i.is_primary and not _is_uniqueness_index(i)
    }
    target_indexes = {
        i.name: i for i in target.indexes if not i.is_primary and not _is_uniqueness_index(i)
    }

    for name, index in source_indexes.items():
        current = target_indexes.get(name)
        if current is None:
            ctx.add(
                _Phase.CREATE_INDEXES,
                ctx.item(
                    DiffType.INDEX_ADDED,
                    table,
                    name,
                    source=index,
                    migration_sql=[sql.create_index(engine, schema, table, index)],
                ),
            )
        elif _index_signature(index) != _index_signature(current):
            ctx.add_rebuild(
                ctx.item(DiffType.INDEX_MODIFIED, table, name, source=index, target=current),
                drop=[sql.drop_index(engine, schema, table, name)],
                create=[sql.create_index(engine, schema, table, index)],
            )

    for name, index in target_indexes.items():
        if name not in source_indexes:
            ctx.add(
                _Phase.DROP_CHANGED,
                ctx.item(
                    DiffType.INDEX_REMOVED,
                    table,
                    name,
                    target=index,
                    migration_sql=[sql.drop_index(engine, schema, table, name)],
                ),
            )


def _fk_signature(fk: ForeignKeyInfo, own_schema: str) -> tuple:
    # References into the table's own schema compare equal across schemas
    ref_schema = None if fk.referenced_schema in (None, own_schema) else fk.referenced_schema
    return (
        tuple(fk.columns),
        ref_schema,
        fk.referenced_table,
        tuple(fk.referenced_columns),
        fk.on_delete.upper(),
        fk.on_update.upper(),
    )


def _diff_foreign_keys(ctx: _DiffContext, source: TableSchema, target: TableSchema) -> None:
    engine, schema, table = ctx.target_engine, ctx.target_schema, source.name
    source_fks = {fk.name: fk for fk in source.foreign_keys}
    target_fks = {fk.name: fk for fk in target.foreign_keys}
    sqlite_note = ["SQLite cannot alter foreign keys in place; rebuild the table to apply"]

    for name, fk in source_fks.items():
        current = target_fks.get(name)
        if current is None:
            statements = [] if ctx.sqlite_target else [
                sql.add_foreign_key(engine, schema, table, fk, ctx.referenced_schema(fk))
            ]
            ctx.add(
                _Phase.CREATE_INDEXES,
                ctx.item(
                    DiffType.FK_ADDED,
                    table,
                    name,
                    source=fk,
                    migration_sql=statements,
                    notes=sqlite_note if ctx.sqlite_target else None,
                ),
            )
        elif _fk_signature(fk, ctx.source_schema) != _fk_signature(current, ctx.target_schema):
            item = ctx.item(
                DiffType.FK_MODIFIED,
                table,
                name,
                source=fk,
                target=current,
                notes=sqlite_note if ctx.sqlite_target else None,
            )
            if ctx.sqlite_target:
                ctx.add(_Phase.DROP_CHANGED, item)
            else:
                ctx.add_rebuild(
                    item,
                    drop=[sql.drop_foreign_key(engine, schema, table, name)],
                    create=[
                        sql.add_foreign_key(engine, schema, table, fk, ctx.referenced_schema(fk))
                    ],
                )

    for name, fk in target_fks.items():
        if name not in source_fks:
            statements = [] if ctx.sqlite_target else [
                sql.drop_foreign_key(engine, schema, table, name)
            ]
            ctx.add(
                _Phase.DROP_CHANGED,
                ctx.item(
                    DiffType.FK_REMOVED,
                    table,
                    name,
                    target=fk,
                    migration_sql=statements,
                    notes=sqlite_note if ctx.sqlite_target else None,
                ),
            )


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def diff_schemas(
    source_tables: list[TableSchema],
    target_tables: list[TableSchema],
    *,
    target_engine: DatabaseEngine,
    source_engine: DatabaseEngine | None = None,
    source_schema: str | None = None,
    target_schema: str | None = None,
    source_connection_id: str = "",
    target_connection_id: str = "",
) -> SchemaDiff:
    """Compare two sets of canonical tables.

    The source is the desired state: every item's SQL, run against the
    target in diff order, reconciles the target toward the source.

    Args:
        source_tables: Tables of the desired schema.
        target_tables: Tables of the schema to migrate.
        target_engine: Engine the migration SQL is written for.
        source_engine: Engine the source tables came from (defaults to
            ``target_engine``).  When the engines differ, column types are
            compared by canonical family.
        source_schema: Source schema name (defaults to the tables' own).
        target_schema: Target schema name (defaults to the tables' own).
        source_connection_id: Identifier recorded on the diff.
        target_connection_id: Identifier recorded on the diff.

    Returns:
        ``SchemaDiff`` with items in migration order.

    Examples:
        >>> orders = TableSchema(
        ...     schema_name="main",
        ...     name="orders",
        ...     columns=[ColumnInfo(name="id", data_type="INTEGER")],
        ... )
        >>> diff_schemas([orders], [orders], target_engine=DatabaseEngine.SQLITE).has_changes
        False
    """
    source_schema = source_schema or (source_tables[0].schema_name if source_tables else "")
    target_schema = target_schema or (target_tables[0].schema_name if target_tables else source_schema)

    ctx = _DiffContext(
        source_engine=source_engine or target_engine,
        target_engine=target_engine,
        source_schema=source_schema,
        target_schema=target_schema,
    )

    source_by_name = {t.name: t for t in source_tables}
    target_by_name = {t.name: t for t in target_tables}

    _add_tables(ctx, [t for name, t in source_by_name.items() if name not in target_by_name])
    _remove_tables(ctx, [t for name, t in target_by_name.items() if name not in source_by_name])

    for name in sorted(source_by_name.keys() & target_by_name.keys()):
        source, target = source_by_name[name], target_by_name[name]
        _diff_columns(ctx, source, target)
        _diff_indexes(ctx, source, target)
        _diff_foreign_keys(ctx, source, target)

    return SchemaDiff(
        source_connection_id=source_connection_id,
        target_connection_id=target_connection_id,
        source_schema=source_schema,
        target_schema=target_schema,
        items=ctx.ordered_items(),
    )


def get_migration_sql(diff: SchemaDiff) -> list[str]:
    """Flatten a diff's migration SQL in execution order.

    Items with no SQL (informational only) contribute nothing.
    """
    return [statement for item in diff.items for statement in item.migration_sql if statement]


async def compare_schemas(
    source: "DatabaseConnector",
    target: "DatabaseConnector",
    source_schema: str | None = None,
    target_schema: str | None = None,
    excluded_tables: set[str] | None = None,
) -> SchemaDiff:
    """Introspect two connectors and diff their schemas.

    Args:
        source: Connector holding the desired schema.
        target: Connector holding the schema to migrate.
        source_schema: Source schema (connector default if ``None``).
        target_schema: Target schema (connector default if ``None``).
        excluded_tables: Extra table names to skip on both sides.

    Returns:
        ``SchemaDiff`` whose SQL is written for the target's engine.

    Raises:
        SchemaNotFoundError: If either schema does not exist on its
            connection.  No partial diff is produced.
    """
    source_schema = source_schema or source.default_schema
    target_schema = target_schema or target.default_schema

    for connector, schema in ((source, source_schema), (target, target_schema)):
        if schema not in await connector.get_schemas():
            raise SchemaNotFoundError(schema, connector.connection_id)

    source_tables = await SchemaIntrospector(source, excluded_tables).introspect(source_schema)
    target_tables = await SchemaIntrospector(target, excluded_tables).introspect(target_schema)

    diff = diff_schemas(
        source_tables,
        target_tables,
        target_engine=target.engine,
        source_engine=source.engine,
        source_schema=source_schema,
        target_schema=target_schema,
        source_connection_id=source.connection_id,
        target_connection_id=target.connection_id,
    )
    logger.info(
        "Schema diff %s.%s -> %s.%s: %d items",
        source.connection_id,
        source_schema,
        target.connection_id,
        target_schema,
        len(diff.items),
    )
    return diff
