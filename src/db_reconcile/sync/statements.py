"""Batched row mutation SQL for each engine.

Builders turn a batch of rows (or keys) into ``Statement`` objects with
named bind parameters.  Multi-row INSERT and DELETE statements are split
so no single statement exceeds the engine's bind-parameter limit.

Upserts use ``ON CONFLICT (...) DO UPDATE`` on Postgres and SQLite and
``ON DUPLICATE KEY UPDATE`` on MySQL/MariaDB.
"""

import json
from functools import partial
from typing import Any

from db_reconcile.adapters.base import DatabaseEngine, Statement
from db_reconcile.schema.sql import qualified_table, quote_identifier

PARAM_LIMITS = {
    DatabaseEngine.POSTGRES: 32767,
    DatabaseEngine.MYSQL: 65535,
    DatabaseEngine.MARIADB: 65535,
    DatabaseEngine.SQLITE: 999,
}


def _bind_value(value: Any) -> Any:
    """Serialize JSON-like values for binding as text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def _chunks(items: list, params_per_item: int, engine: DatabaseEngine) -> list[list]:
    size = max(1, PARAM_LIMITS[engine] // max(1, params_per_item))
    return [items[i : i + size] for i in range(0, len(items), size)]


def _upsert_clause(engine: DatabaseEngine, columns: list[str], primary_keys: list[str]) -> str:
    q = partial(quote_identifier, engine)
    non_keys = [c for c in columns if c not in primary_keys]

    if engine.is_mysql_family:
        # A key-only table still needs one assignment to be valid SQL
        targets = non_keys or primary_keys[:1]
        assignments = ", ".join(f"{q(c)} = VALUES({q(c)})" for c in targets)
        return f" ON DUPLICATE KEY UPDATE {assignments}"

    conflict = ", ".join(q(k) for k in primary_keys)
    if not non_keys:
        return f" ON CONFLICT ({conflict}) DO NOTHING"
    assignments = ", ".join(f"{q(c)} = excluded.{q(c)}" for c in non_keys)
    return f" ON CONFLICT ({conflict}) DO UPDATE SET {assignments}"


def insert_statements(
    engine: DatabaseEngine,
    schema: str | None,
    table: str,
    columns: list[str],
    rows: list[dict[str, Any]],
    primary_keys: list[str],
    upsert: bool = False,
) -> list[Statement]:
    """Multi-row INSERT (or upsert) statements for ``rows``.

    Example:
        >>> [s.sql for s in insert_statements(
        ...     DatabaseEngine.SQLITE, None, "users", ["id", "name"],
        ...     [{"id": 2, "name": "b"}], ["id"], upsert=True,
        ... )]
        ['INSERT INTO "users" ("id", "name") VALUES (:r0_0, :r0_1) ON CONFLICT ("id") DO UPDATE SET "name" = excluded."name"']
    """
    if not rows:
        return []

    target = qualified_table(engine, schema, table)
    column_sql = ", ".join(quote_identifier(engine, c) for c in columns)
    suffix = _upsert_clause(engine, columns, primary_keys) if upsert else ""

    statements = []
    for chunk in _chunks(rows, len(columns), engine):
        params: dict[str, Any] = {}
        values = []
        for i, row in enumerate(chunk):
            placeholders = []
            for j, column in enumerate(columns):
                name = f"r{i}_{j}"
                params[name] = _bind_value(row.get(column))
                placeholders.append(f":{name}")
            values.append(f"({', '.join(placeholders)})")
        sql = f"INSERT INTO {target} ({column_sql}) VALUES {', '.join(values)}{suffix}"
        statements.append(Statement(sql, params))
    return statements


def update_statements(
    engine: DatabaseEngine,
    schema: str | None,
    table: str,
    columns: list[str],
    rows: list[dict[str, Any]],
    primary_keys: list[str],
) -> list[Statement]:
    """One UPDATE per row, matching on the primary key."""
    target = qualified_table(engine, schema, table)
    non_keys = [c for c in columns if c not in primary_keys]
    if not non_keys:
        return []

    set_sql = ", ".join(
        f"{quote_identifier(engine, c)} = :s{j}" for j, c in enumerate(non_keys)
    )
    where_sql = " AND ".join(
        f"{quote_identifier(engine, k)} = :k{j}" for j, k in enumerate(primary_keys)
    )
    sql = f"UPDATE {target} SET {set_sql} WHERE {where_sql}"

    statements = []
    for row in rows:
        params = {f"s{j}": _bind_value(row.get(c)) for j, c in enumerate(non_keys)}
        params.update({f"k{j}": row[k] for j, k in enumerate(primary_keys)})
        statements.append(Statement(sql, params))
    return statements


def delete_statements(
    engine: DatabaseEngine,
    schema: str | None,
    table: str,
    keys: list[tuple[Any, ...]],
    primary_keys: list[str],
) -> list[Statement]:
    """DELETE statements for raw key tuples (values as read from the target).

    Single-column keys use ``IN (...)``; composite keys use OR'd
    conjunctions.
    """
    if not keys:
        return []

    target = qualified_table(engine, schema, table)
    statements = []
    for chunk in _chunks(keys, len(primary_keys), engine):
        params: dict[str, Any] = {}
        if len(primary_keys) == 1:
            names = []
            for i, key in enumerate(chunk):
                params[f"d{i}"] = key[0]
                names.append(f":d{i}")
            where_sql = f"{quote_identifier(engine, primary_keys[0])} IN ({', '.join(names)})"
        else:
            clauses = []
            for i, key in enumerate(chunk):
                parts = []
                for j, column in enumerate(primary_keys):
                    params[f"d{i}_{j}"] = key[j]
                    parts.append(f"{quote_identifier(engine, column)} = :d{i}_{j}")
                clauses.append(f"({' AND '.join(parts)})")
            where_sql = " OR ".join(clauses)
        statements.append(Statement(f"DELETE FROM {target} WHERE {where_sql}", params))
    return statements
