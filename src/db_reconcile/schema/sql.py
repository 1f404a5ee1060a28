"""DDL statement builders for migration SQL.

Every builder takes the target ``DatabaseEngine`` and returns complete,
semicolon-terminated statements with identifiers quoted for that engine
(backticks on MySQL/MariaDB, double quotes elsewhere).  SQLite tables are
never schema-qualified.

Example:
    >>> drop_column(DatabaseEngine.POSTGRES, "public", "orders", "total")
    'ALTER TABLE "public"."orders" DROP COLUMN "total";'
    >>> drop_column(DatabaseEngine.MYSQL, "shop", "orders", "total")
    'ALTER TABLE `shop`.`orders` DROP COLUMN `total`;'
"""

from db_reconcile.adapters.base import DatabaseEngine
from db_reconcile.schema.models import ColumnInfo, ForeignKeyInfo, IndexInfo, TableSchema


def quote_identifier(engine: DatabaseEngine, name: str) -> str:
    """Quote an identifier, escaping embedded quote characters."""
    if engine.is_mysql_family:
        return "`" + name.replace("`", "``") + "`"
    return '"' + name.replace('"', '""') + '"'


def qualified_table(engine: DatabaseEngine, schema: str | None, table: str) -> str:
    """``schema.table`` quoted for ``engine`` (bare table on SQLite)."""
    if engine is DatabaseEngine.SQLITE or not schema:
        return quote_identifier(engine, table)
    return f"{quote_identifier(engine, schema)}.{quote_identifier(engine, table)}"


def _column_list(engine: DatabaseEngine, columns: list[str]) -> str:
    return ", ".join(quote_identifier(engine, c) for c in columns)


def column_definition(engine: DatabaseEngine, column: ColumnInfo) -> str:
    """Column definition as used by CREATE TABLE and ADD COLUMN."""
    parts = [quote_identifier(engine, column.name), column.data_type]
    if not column.nullable:
        parts.append("NOT NULL")
    if column.default_value is not None:
        parts.append(f"DEFAULT {column.default_value}")
    return " ".join(parts)


def foreign_key_clause(
    engine: DatabaseEngine, fk: ForeignKeyInfo, referenced_schema: str | None
) -> str:
    """``CONSTRAINT name FOREIGN KEY (...) REFERENCES ...`` clause."""
    ref_table = qualified_table(engine, referenced_schema, fk.referenced_table)
    ref_columns = (
        f" ({_column_list(engine, fk.referenced_columns)})"
        if fk.referenced_columns
        else ""
    )
    return (
        f"CONSTRAINT {quote_identifier(engine, fk.name)} "
        f"FOREIGN KEY ({_column_list(engine, fk.columns)}) "
        f"REFERENCES {ref_table}{ref_columns} "
        f"ON DELETE {fk.on_delete} ON UPDATE {fk.on_update}"
    )


# ------------------------------------------------------------------
# Tables
# ------------------------------------------------------------------


def create_table(
    engine: DatabaseEngine,
    schema: str | None,
    table: TableSchema,
    inline_foreign_keys: list[tuple[ForeignKeyInfo, str | None]] | None = None,
) -> str:
    """CREATE TABLE with columns, primary key and optional inline FKs.

    Args:
        engine: Target engine.
        schema: Target schema.
        table: Table to create (columns already typed for ``engine``).
        inline_foreign_keys: ``(fk, referenced_schema)`` pairs to declare
            inside the table body (needed on SQLite, which cannot add
            constraints later).
    """
    lines = [column_definition(engine, c) for c in table.columns]
    if table.primary_key:
        lines.append(f"PRIMARY KEY ({_column_list(engine, table.primary_key)})")
    for fk, referenced_schema in inline_foreign_keys or []:
        lines.append(foreign_key_clause(engine, fk, referenced_schema))

    body = ",\n  ".join(lines)
    return f"CREATE TABLE {qualified_table(engine, schema, table.name)} (\n  {body}\n);"


def drop_table(engine: DatabaseEngine, schema: str | None, table: str) -> str:
    return f"DROP TABLE {qualified_table(engine, schema, table)};"


# ------------------------------------------------------------------
# Columns
# ------------------------------------------------------------------


def add_column(
    engine: DatabaseEngine, schema: str | None, table: str, column: ColumnInfo
) -> str:
    return (
        f"ALTER TABLE {qualified_table(engine, schema, table)} "
        f"ADD COLUMN {column_definition(engine, column)};"
    )


def drop_column(
    engine: DatabaseEngine, schema: str | None, table: str, column: str
) -> str:
    return (
        f"ALTER TABLE {qualified_table(engine, schema, table)} "
        f"DROP COLUMN {quote_identifier(engine, column)};"
    )


def alter_column(
    engine: DatabaseEngine,
    schema: str | None,
    table: str,
    desired: ColumnInfo,
    current: ColumnInfo,
    changed: list[str],
) -> list[str]:
    """Per-attribute ALTER statements turning ``current`` into ``desired``.

    Statements follow the fixed order type, nullability, default.  MySQL
    restates the whole column with MODIFY COLUMN for type and nullability
    changes, so both are covered by a single statement there.

    Args:
        changed: Attribute names that differ (``data_type``, ``nullable``,
            ``default_value``; anything else is ignored).

    Returns:
        Statements to run in order.  Empty on SQLite, which cannot alter
        columns in place.
    """
    if engine is DatabaseEngine.SQLITE:
        return []

    target = qualified_table(engine, schema, table)
    col = quote_identifier(engine, desired.name)
    statements: list[str] = []

    if engine.is_mysql_family:
        if "data_type" in changed or "nullable" in changed:
            statements.append(
                f"ALTER TABLE {target} MODIFY COLUMN {column_definition(engine, desired)};"
            )
    else:
        if "data_type" in changed:
            statements.append(
                f"ALTER TABLE {target} ALTER COLUMN {col} "
                f"TYPE {desired.data_type} USING {col}::{desired.data_type};"
            )
        if "nullable" in changed:
            action = "DROP NOT NULL" if desired.nullable else "SET NOT NULL"
            statements.append(f"ALTER TABLE {target} ALTER COLUMN {col} {action};")

    if "default_value" in changed:
        if desired.default_value is None:
            statements.append(f"ALTER TABLE {target} ALTER COLUMN {col} DROP DEFAULT;")
        else:
            statements.append(
                f"ALTER TABLE {target} ALTER COLUMN {col} "
                f"SET DEFAULT {desired.default_value};"
            )

    return statements


# ------------------------------------------------------------------
# Indexes and foreign keys
# ------------------------------------------------------------------


def create_index(
    engine: DatabaseEngine, schema: str | None, table: str, index: IndexInfo
) -> str:
    unique = "UNIQUE " if index.is_unique else ""
    return (
        f"CREATE {unique}INDEX {quote_identifier(engine, index.name)} "
        f"ON {qualified_table(engine, schema, table)} "
        f"({_column_list(engine, index.columns)});"
    )


def drop_index(
    engine: DatabaseEngine, schema: str | None, table: str, index_name: str
) -> str:
    if engine.is_mysql_family:
        return (
            f"DROP INDEX {quote_identifier(engine, index_name)} "
            f"ON {qualified_table(engine, schema, table)};"
        )
    # Postgres index names live in the table's schema
    return f"DROP INDEX IF EXISTS {qualified_table(engine, schema, index_name)};"


def drop_unique(
    engine: DatabaseEngine, schema: str | None, table: str, index_name: str
) -> list[str]:
    """Statements removing a single-column unique index.

    On Postgres the index may back a UNIQUE constraint, which refuses a
    plain DROP INDEX, so the constraint is dropped first when it exists.
    """
    statements = [drop_index(engine, schema, table, index_name)]
    if engine is DatabaseEngine.POSTGRES:
        statements.insert(
            0,
            f"ALTER TABLE {qualified_table(engine, schema, table)} "
            f"DROP CONSTRAINT IF EXISTS {quote_identifier(engine, index_name)};",
        )
    return statements


def add_foreign_key(
    engine: DatabaseEngine,
    schema: str | None,
    table: str,
    fk: ForeignKeyInfo,
    referenced_schema: str | None,
) -> str:
    return (
        f"ALTER TABLE {qualified_table(engine, schema, table)} "
        f"ADD {foreign_key_clause(engine, fk, referenced_schema)};"
    )


def drop_foreign_key(
    engine: DatabaseEngine, schema: str | None, table: str, fk_name: str
) -> str:
    keyword = "FOREIGN KEY" if engine.is_mysql_family else "CONSTRAINT"
    return (
        f"ALTER TABLE {qualified_table(engine, schema, table)} "
        f"DROP {keyword} {quote_identifier(engine, fk_name)};"
    )
