"""Schema introspection through a ``DatabaseConnector``.

Loads every base table of a schema as a canonical ``TableSchema``.  The
engine-specific catalog queries live in each connector; this module only
decides which tables to load.

Usage:
    introspector = SchemaIntrospector(connector)

    # Full canonical schema (columns, indexes, foreign keys, primary key)
    tables = await introspector.introspect("public")
"""

import logging
from typing import TYPE_CHECKING

from db_reconcile.schema.models import TableSchema

if TYPE_CHECKING:
    from db_reconcile.adapters.base import DatabaseConnector

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Introspects the tables of one schema on one connector.

    Views are skipped; only base tables take part in schema diffs.
    """

    # Tables to exclude from introspection (engine bookkeeping tables)
    EXCLUDED_TABLES = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
        "sqlite_sequence",
        "sqlite_stat1",
    }

    def __init__(
        self,
        connector: "DatabaseConnector",
        excluded_tables: set[str] | None = None,
    ) -> None:
        """Initialize with a connected connector.

        Args:
            connector: Connector to read catalogs from.
            excluded_tables: Additional table names to skip.
        """
        self._connector = connector
        self._excluded = self.EXCLUDED_TABLES | (excluded_tables or set())

    async def introspect(self, schema_name: str | None = None) -> list[TableSchema]:
        """Introspect every base table in a schema.

        Args:
            schema_name: Schema to read (connector default if ``None``).

        Returns:
            Canonical tables sorted by name.
        """
        schema_name = schema_name or self._connector.default_schema
        tables = []
        for table_name in await self._get_tables(schema_name):
            tables.append(await self._connector.get_table_schema(schema_name, table_name))

        logger.debug(
            "Introspected %d tables in %s.%s",
            len(tables),
            self._connector.connection_id,
            schema_name,
        )
        return tables

    async def _get_tables(self, schema_name: str) -> list[str]:
        """Get base table names in schema, minus excluded tables."""
        infos = await self._connector.get_tables(schema_name)
        return sorted(
            info.name
            for info in infos
            if info.table_type == "table" and info.name not in self._excluded
        )
