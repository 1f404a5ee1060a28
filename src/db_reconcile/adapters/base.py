"""Database connector protocol definition.

Defines the ``DatabaseConnector`` Protocol that every engine connector
implements, plus the small result types it returns.  All methods are
``async def`` -- the library is async-first.

Schema comparison and data sync depend only on this Protocol, so tests
can pass in-memory fakes and new engines need no changes to the core.

Usage:
    from db_reconcile.adapters.base import DatabaseConnector

    async def do_work(connector: DatabaseConnector) -> None:
        await connector.connect()
        result = await connector.query("SELECT id, name FROM users")
        schema = await connector.get_table_schema("public", "users")
        await connector.disconnect()
"""

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from db_reconcile.schema.models import TableInfo, TableSchema


class DatabaseEngine(str, Enum):
    """Database engines with a connector implementation."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"

    @property
    def is_mysql_family(self) -> bool:
        """True for MySQL and MariaDB, which share SQL dialect and catalogs."""
        return self in (DatabaseEngine.MYSQL, DatabaseEngine.MARIADB)

    def same_family(self, other: "DatabaseEngine") -> bool:
        """True if both engines store and spell column types the same way."""
        if self.is_mysql_family and other.is_mysql_family:
            return True
        return self is other


class Statement(NamedTuple):
    """One SQL statement with its named bind parameters."""

    sql: str
    params: dict[str, Any] = {}


class QueryResult(BaseModel):
    """Rows returned by ``DatabaseConnector.query()``.

    Example:
        >>> result = QueryResult(columns=["id"], rows=[{"id": 1}], row_count=1)
        >>> result.rows[0]["id"]
        1
    """

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0


class ExecuteResult(BaseModel):
    """Outcome of ``DatabaseConnector.execute()``."""

    rows_affected: int = 0


class DatabaseConnector(Protocol):
    """Connector interface that all engine implementations provide.

    A connector owns its connection pool between ``connect()`` and
    ``disconnect()``; callers should scope that lifetime with
    ``db_reconcile.factory.connector_session``.

    Attributes:
        engine: Which database engine this connector talks to.
        connection_id: Caller-chosen identifier (usually the profile name).
        default_schema: Schema used when callers pass ``None``.
    """

    engine: DatabaseEngine
    connection_id: str
    default_schema: str

    async def connect(self) -> None:
        """Open the pool and verify the database is reachable.

        Raises:
            DatabaseConnectionError: If the database cannot be reached.
        """
        ...

    async def disconnect(self) -> None:
        """Dispose of the pool.  Safe to call more than once."""
        ...

    async def query(
        self, sql: str, params: dict[str, Any] | None = None
    ) -> QueryResult:
        """Run a row-returning statement.

        Args:
            sql: SQL text with ``:name`` bind parameters.
            params: Values for the bind parameters.

        Returns:
            ``QueryResult`` with column names and one dict per row.

        Raises:
            TransientIOError: On a dropped or invalidated connection.
            QueryExecutionError: If the database rejects the statement.

        Example:
            result = await connector.query(
                "SELECT id FROM users WHERE status = :status",
                {"status": "active"},
            )
        """
        ...

    async def execute(
        self, sql: str, params: dict[str, Any] | None = None
    ) -> ExecuteResult:
        """Run one statement in its own transaction (DDL or DML)."""
        ...

    async def execute_batch(self, statements: Sequence[Statement]) -> int:
        """Run several statements as a single transaction.

        Either every statement commits or none does.

        Returns:
            Total rows affected across all statements.
        """
        ...

    async def get_schemas(self) -> list[str]:
        """List user schemas (databases on MySQL, attached files on SQLite)."""
        ...

    async def get_tables(self, schema: str | None = None) -> list["TableInfo"]:
        """List tables and views in ``schema`` (default schema if ``None``)."""
        ...

    async def get_table_schema(self, schema: str, table: str) -> "TableSchema":
        """Introspect one table into its canonical ``TableSchema``.

        Raises:
            TableNotFoundError: If the table has no columns (does not exist).
        """
        ...

    async def get_server_version(self) -> str:
        """Return the server version string."""
        ...
