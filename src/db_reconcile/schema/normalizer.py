"""Convert engine-native introspection rows into a canonical ``TableSchema``.

Connectors fetch catalog rows for one (schema, table) pair and hand them
to ``normalize()``; this module is the only place that knows how each
engine spells types, flags and ordinal positions.

Row shapes:
- Postgres / MySQL: ``information_schema`` queries aliased to lower-case
  names (``column_name``, ``ordinal_position``, ``is_nullable`` ...).
- SQLite: the raw ``pragma_table_info`` / ``pragma_index_list`` +
  ``pragma_index_info`` / ``pragma_foreign_key_list`` columns.

Usage:
    from db_reconcile.schema.normalizer import IntrospectionRows, normalize

    rows = IntrospectionRows(schema_name="main", table="users", columns=[...])
    table = normalize(DatabaseEngine.SQLITE, rows)
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from db_reconcile.adapters.base import DatabaseEngine
from db_reconcile.errors import TableNotFoundError
from db_reconcile.schema.models import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    TableSchema,
)

Row = dict[str, Any]


@dataclass
class IntrospectionRows:
    """Raw catalog rows for exactly one table.

    Attributes:
        schema_name: Schema the rows were read from.
        table: Table the rows describe.
        columns: One row per column.
        indexes: One row per (index, column) pair.
        foreign_keys: One row per (constraint, column) pair.
    """

    schema_name: str
    table: str
    columns: list[Row] = field(default_factory=list)
    indexes: list[Row] = field(default_factory=list)
    foreign_keys: list[Row] = field(default_factory=list)


def normalize(engine: DatabaseEngine, rows: IntrospectionRows) -> TableSchema:
    """Build the canonical schema for one table.

    Args:
        engine: Engine the rows came from.
        rows: Catalog rows for a single (schema, table).

    Returns:
        ``TableSchema`` with columns in ordinal order, index and FK columns
        in position order, and the primary key in column order.

    Raises:
        TableNotFoundError: If there are no column rows.
    """
    if not rows.columns:
        raise TableNotFoundError(rows.schema_name, rows.table)

    if engine is DatabaseEngine.SQLITE:
        indexes = _sqlite_indexes(rows.indexes)
        columns = _sqlite_columns(rows.columns, _unique_columns(indexes))
        # UNIQUE constraints surface as column flags, not as named indexes
        indexes = [
            i for i in indexes
            if i.is_primary or not i.name.startswith("sqlite_autoindex_")
        ]
        foreign_keys = _sqlite_foreign_keys(rows.table, rows.schema_name, rows.foreign_keys)
    else:
        indexes = _catalog_indexes(rows.indexes)
        unique_columns = _unique_columns(indexes)
        ordered = sorted(rows.columns, key=lambda r: int(r["ordinal_position"]))
        columns = [_catalog_column(engine, r, unique_columns) for r in ordered]
        foreign_keys = _catalog_foreign_keys(rows.foreign_keys)

    return TableSchema(
        schema_name=rows.schema_name,
        name=rows.table,
        columns=columns,
        indexes=sorted(indexes, key=lambda i: i.name),
        foreign_keys=sorted(foreign_keys, key=lambda f: f.name),
        primary_key=[c.name for c in columns if c.is_primary_key],
    )


def _unique_columns(indexes: list[IndexInfo]) -> set[str]:
    """Columns made unique on their own by a non-primary unique index."""
    return {
        index.columns[0]
        for index in indexes
        if index.is_unique and not index.is_primary and len(index.columns) == 1
    }


# ------------------------------------------------------------------
# Postgres / MySQL (information_schema)
# ------------------------------------------------------------------


def _postgres_type(row: Row) -> str:
    """Compose a Postgres type from ``udt_name`` and its modifiers."""
    data_type = row["data_type"]
    udt_name = row.get("udt_name") or data_type
    length = row.get("character_maximum_length")
    precision = row.get("numeric_precision")
    scale = row.get("numeric_scale")

    if length:
        return f"{udt_name}({length})"
    if precision and scale:
        return f"{udt_name}({precision},{scale})"
    if data_type == "ARRAY":
        return f"{udt_name.lstrip('_')}[]"
    if data_type == "USER-DEFINED":
        return udt_name
    return data_type


def _catalog_column(engine: DatabaseEngine, row: Row, unique_columns: set[str]) -> ColumnInfo:
    if engine is DatabaseEngine.POSTGRES:
        data_type = _postgres_type(row)
        is_primary_key = bool(row.get("is_primary_key"))
    else:
        # COLUMN_TYPE already carries length, precision and unsigned
        data_type = row["column_type"]
        is_primary_key = (row.get("column_key") or "") == "PRI"

    default = row.get("column_default")
    return ColumnInfo(
        name=row["column_name"],
        data_type=data_type,
        nullable=row["is_nullable"] == "YES",
        default_value=str(default) if default is not None else None,
        is_primary_key=is_primary_key,
        is_unique=row["column_name"] in unique_columns,
        comment=row.get("comment") or None,
    )


def _catalog_indexes(rows: list[Row]) -> list[IndexInfo]:
    grouped: dict[str, list[Row]] = defaultdict(list)
    for row in rows:
        grouped[row["index_name"]].append(row)

    indexes = []
    for name, index_rows in grouped.items():
        index_rows.sort(key=lambda r: int(r["position"]))
        first = index_rows[0]
        indexes.append(
            IndexInfo(
                name=name,
                columns=[r["column_name"] for r in index_rows],
                is_unique=bool(first["is_unique"]),
                is_primary=bool(first["is_primary"]),
                index_type=str(first.get("index_type") or "btree").lower(),
            )
        )
    return indexes


def _catalog_foreign_keys(rows: list[Row]) -> list[ForeignKeyInfo]:
    grouped: dict[str, list[Row]] = defaultdict(list)
    for row in rows:
        grouped[row["constraint_name"]].append(row)

    foreign_keys = []
    for name, fk_rows in grouped.items():
        fk_rows.sort(key=lambda r: int(r["position"]))
        first = fk_rows[0]
        foreign_keys.append(
            ForeignKeyInfo(
                name=name,
                columns=[r["column_name"] for r in fk_rows],
                referenced_schema=first.get("referenced_schema"),
                referenced_table=first["referenced_table"],
                referenced_columns=[r["referenced_column"] for r in fk_rows],
                on_delete=(first.get("on_delete") or "NO ACTION").upper(),
                on_update=(first.get("on_update") or "NO ACTION").upper(),
            )
        )
    return foreign_keys


# ------------------------------------------------------------------
# SQLite (pragma table-valued functions)
# ------------------------------------------------------------------


def _sqlite_indexes(rows: list[Row]) -> list[IndexInfo]:
    grouped: dict[str, list[Row]] = defaultdict(list)
    for row in rows:
        grouped[row["index_name"]].append(row)

    indexes = []
    for name, index_rows in grouped.items():
        index_rows.sort(key=lambda r: int(r["position"]))
        first = index_rows[0]
        indexes.append(
            IndexInfo(
                name=name,
                columns=[r["column_name"] for r in index_rows],
                is_unique=bool(first["is_unique"]),
                is_primary=first["origin"] == "pk",
                index_type="btree",
            )
        )
    return indexes


def _sqlite_columns(rows: list[Row], unique_columns: set[str]) -> list[ColumnInfo]:
    columns = []
    for row in sorted(rows, key=lambda r: int(r["cid"])):
        default = row.get("dflt_value")
        columns.append(
            ColumnInfo(
                name=row["name"],
                data_type=row.get("type") or "TEXT",
                nullable=not row["notnull"],
                default_value=str(default) if default is not None else None,
                is_primary_key=int(row["pk"]) > 0,
                is_unique=row["name"] in unique_columns,
            )
        )
    return columns


def _sqlite_foreign_keys(
    table: str, schema_name: str, rows: list[Row]
) -> list[ForeignKeyInfo]:
    grouped: dict[int, list[Row]] = defaultdict(list)
    for row in rows:
        grouped[int(row["id"])].append(row)

    foreign_keys = []
    for fk_id, fk_rows in grouped.items():
        fk_rows.sort(key=lambda r: int(r["seq"]))
        first = fk_rows[0]
        foreign_keys.append(
            ForeignKeyInfo(
                name=f"fk_{table}_{fk_id}",
                columns=[r["from"] for r in fk_rows],
                referenced_schema=schema_name,
                referenced_table=first["table"],
                # "to" is NULL when the reference targets the parent's primary key
                referenced_columns=[r["to"] for r in fk_rows if r.get("to")],
                on_delete=(first.get("on_delete") or "NO ACTION").upper(),
                on_update=(first.get("on_update") or "NO ACTION").upper(),
            )
        )
    return foreign_keys
