"""Database connectors package.

Provides the ``DatabaseConnector`` Protocol and concrete async connector
implementations for PostgreSQL, MySQL/MariaDB and SQLite, all built on
SQLAlchemy's async engine.

Usage:
    from db_reconcile.adapters import DatabaseConnector, AsyncPostgresConnector
    from db_reconcile.adapters import AsyncMySQLConnector, AsyncSqliteConnector
"""

from db_reconcile.adapters.base import (
    DatabaseConnector,
    DatabaseEngine,
    ExecuteResult,
    QueryResult,
    Statement,
)
from db_reconcile.adapters.mysql import AsyncMySQLConnector
from db_reconcile.adapters.postgres import AsyncPostgresConnector
from db_reconcile.adapters.sqlite import AsyncSqliteConnector

__all__ = [
    "DatabaseConnector",
    "DatabaseEngine",
    "ExecuteResult",
    "QueryResult",
    "Statement",
    "AsyncPostgresConnector",
    "AsyncMySQLConnector",
    "AsyncSqliteConnector",
]
