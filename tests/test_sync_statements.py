"""Tests for batched INSERT/UPDATE/DELETE builders."""

from db_reconcile.adapters.base import DatabaseEngine
from db_reconcile.sync.statements import (
    delete_statements,
    insert_statements,
    update_statements,
)

PG = DatabaseEngine.POSTGRES
MY = DatabaseEngine.MYSQL
LITE = DatabaseEngine.SQLITE


class TestInsertStatements:
    """Multi-row inserts and upserts."""

    def test_plain_insert(self):
        """Rows become one multi-row INSERT with numbered binds."""
        statements = insert_statements(
            PG, "public", "users", ["id", "name"],
            [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}], ["id"],
        )
        assert len(statements) == 1
        assert statements[0].sql == (
            'INSERT INTO "public"."users" ("id", "name") '
            "VALUES (:r0_0, :r0_1), (:r1_0, :r1_1)"
        )
        assert statements[0].params == {"r0_0": 1, "r0_1": "a", "r1_0": 2, "r1_1": "b"}

    def test_no_rows(self):
        """Nothing to insert builds nothing."""
        assert insert_statements(PG, "public", "users", ["id"], [], ["id"]) == []

    def test_split_at_parameter_limit(self):
        """SQLite inserts are split below its bind limit."""
        rows = [{"id": i, "name": str(i)} for i in range(1000)]
        statements = insert_statements(LITE, None, "users", ["id", "name"], rows, ["id"])
        assert len(statements) == 3
        assert all(len(s.params) <= 999 for s in statements)
        assert sum(len(s.params) for s in statements) == 2000

    def test_mysql_upsert(self):
        """MySQL upserts use ON DUPLICATE KEY UPDATE."""
        statement = insert_statements(
            MY, "shop", "users", ["id", "name"], [{"id": 1, "name": "a"}], ["id"], upsert=True,
        )[0]
        assert statement.sql.endswith(" ON DUPLICATE KEY UPDATE `name` = VALUES(`name`)")

    def test_key_only_upsert(self):
        """Key-only tables do nothing on conflict."""
        statement = insert_statements(
            PG, "public", "tags", ["id"], [{"id": 1}], ["id"], upsert=True,
        )[0]
        assert statement.sql.endswith(' ON CONFLICT ("id") DO NOTHING')

    def test_json_values_serialized(self):
        """dict and list values are bound as JSON text."""
        statement = insert_statements(
            PG, "public", "events", ["id", "payload"],
            [{"id": 1, "payload": {"k": [1, 2]}}], ["id"],
        )[0]
        assert statement.params["r0_1"] == '{"k": [1, 2]}'


class TestUpdateStatements:
    """Per-row updates keyed on the primary key."""

    def test_update(self):
        """SET covers non-key columns and WHERE covers keys."""
        statements = update_statements(
            LITE, "main", "users", ["id", "name"], [{"id": 2, "name": "B"}], ["id"],
        )
        assert statements[0].sql == 'UPDATE "users" SET "name" = :s0 WHERE "id" = :k0'
        assert statements[0].params == {"s0": "B", "k0": 2}

    def test_key_only_table(self):
        """A table with only key columns has nothing to update."""
        assert update_statements(LITE, None, "tags", ["id"], [{"id": 1}], ["id"]) == []


class TestDeleteStatements:
    """Deletes by raw key tuples."""

    def test_single_key(self):
        """Single-column keys use IN."""
        statement = delete_statements(PG, "public", "users", [(3,), (4,)], ["id"])[0]
        assert statement.sql == 'DELETE FROM "public"."users" WHERE "id" IN (:d0, :d1)'
        assert statement.params == {"d0": 3, "d1": 4}

    def test_composite_key(self):
        """Composite keys use OR'd conjunctions."""
        statement = delete_statements(LITE, None, "links", [(1, 2)], ["a", "b"])[0]
        assert statement.sql == 'DELETE FROM "links" WHERE ("a" = :d0_0 AND "b" = :d0_1)'
        assert statement.params == {"d0_0": 1, "d0_1": 2}
