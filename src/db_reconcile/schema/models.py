"""Pydantic models for canonical schemas and schema diffs.

This module contains schema-domain models:
- Canonical schema models: ColumnInfo, IndexInfo, ForeignKeyInfo,
  TableSchema, TableInfo
- Diff models: DiffType, SchemaDiffItem, SchemaDiffSummary, SchemaDiff

Canonical schema models are frozen: a ``TableSchema`` is produced once by
the normalizer and never edited afterwards.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ============================================================================
# Canonical Schema Models
# ============================================================================


class ColumnInfo(BaseModel):
    """Schema for a table column.

    Example:
        >>> col = ColumnInfo(name="id", data_type="integer", nullable=False)
        >>> col.is_primary_key
        False
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    nullable: bool = True
    default_value: str | None = None
    is_primary_key: bool = False
    is_unique: bool = False
    comment: str | None = None


class IndexInfo(BaseModel):
    """Schema for an index.  ``columns`` keeps index position order."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    index_type: str = "btree"


class ForeignKeyInfo(BaseModel):
    """Schema for a foreign key constraint."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: list[str] = Field(default_factory=list)
    referenced_schema: str | None = None
    referenced_table: str
    referenced_columns: list[str] = Field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


class TableSchema(BaseModel):
    """Canonical schema for one table.

    Columns are in ordinal order, indexes and foreign keys are sorted by
    name, and ``primary_key`` lists key columns in column order.

    Example:
        >>> table = TableSchema(
        ...     schema_name="public",
        ...     name="orders",
        ...     columns=[ColumnInfo(name="id", data_type="integer", is_primary_key=True)],
        ...     primary_key=["id"],
        ... )
        >>> table.column_names
        ['id']
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str
    name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    indexes: list[IndexInfo] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        """Column names in ordinal order."""
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> ColumnInfo | None:
        """Look up a column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None


class TableInfo(BaseModel):
    """Lightweight table listing entry returned by ``get_tables()``."""

    schema_name: str
    name: str
    table_type: str = "table"  # table, view
    row_count: int | None = None


# ============================================================================
# Diff Models
# ============================================================================


class DiffType(str, Enum):
    """Kinds of structural difference between two schemas."""

    TABLE_ADDED = "table_added"
    TABLE_REMOVED = "table_removed"
    COLUMN_ADDED = "column_added"
    COLUMN_REMOVED = "column_removed"
    COLUMN_MODIFIED = "column_modified"
    INDEX_ADDED = "index_added"
    INDEX_REMOVED = "index_removed"
    INDEX_MODIFIED = "index_modified"
    FK_ADDED = "fk_added"
    FK_REMOVED = "fk_removed"
    FK_MODIFIED = "fk_modified"


class SchemaDiffItem(BaseModel):
    """One structural difference plus the SQL that reconciles it.

    ``source`` and ``target`` hold snapshots of the affected element
    (``None`` on the side where it does not exist).  ``notes`` carries
    informational warnings, e.g. when the target engine cannot apply the
    change and ``migration_sql`` is left empty.
    """

    type: DiffType
    schema_name: str
    table: str
    name: str | None = None
    source: dict[str, Any] | None = None
    target: dict[str, Any] | None = None
    migration_sql: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        """``table`` or ``table.name`` for display."""
        return f"{self.table}.{self.name}" if self.name else self.table


_SUMMARY_FIELDS: dict[DiffType, str] = {
    DiffType.TABLE_ADDED: "tables_added",
    DiffType.TABLE_REMOVED: "tables_removed",
    DiffType.COLUMN_ADDED: "columns_added",
    DiffType.COLUMN_REMOVED: "columns_removed",
    DiffType.COLUMN_MODIFIED: "columns_modified",
    DiffType.INDEX_ADDED: "indexes_added",
    DiffType.INDEX_REMOVED: "indexes_removed",
    DiffType.INDEX_MODIFIED: "indexes_modified",
    DiffType.FK_ADDED: "fks_added",
    DiffType.FK_REMOVED: "fks_removed",
    DiffType.FK_MODIFIED: "fks_modified",
}


class SchemaDiffSummary(BaseModel):
    """Count of changed elements per diff type.

    A changed index or FK spans two items (drop, then recreate) and counts
    once.

    Example:
        >>> SchemaDiffSummary().total
        0
    """

    tables_added: int = 0
    tables_removed: int = 0
    columns_added: int = 0
    columns_removed: int = 0
    columns_modified: int = 0
    indexes_added: int = 0
    indexes_removed: int = 0
    indexes_modified: int = 0
    fks_added: int = 0
    fks_removed: int = 0
    fks_modified: int = 0

    @classmethod
    def from_items(cls, items: list[SchemaDiffItem]) -> "SchemaDiffSummary":
        """Count distinct (type, element) pairs."""
        counts = dict.fromkeys(_SUMMARY_FIELDS.values(), 0)
        for diff_type, _ in dict.fromkeys((item.type, item.label) for item in items):
            counts[_SUMMARY_FIELDS[diff_type]] += 1
        return cls(**counts)

    @property
    def total(self) -> int:
        """Total number of diff items."""
        return sum(self.model_dump().values())


class SchemaDiff(BaseModel):
    """Result of comparing a source schema (desired) with a target schema.

    Items are ordered so that their flattened ``migration_sql`` can be run
    against the target in one pass.  ``summary`` is derived from ``items``
    on every access, so it cannot drift from the item list.

    Example:
        >>> diff = SchemaDiff(source_schema="public", target_schema="public")
        >>> diff.has_changes
        False
        >>> diff.format_report()
        'Schemas match'
    """

    source_connection_id: str = ""
    target_connection_id: str = ""
    source_schema: str
    target_schema: str
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    items: list[SchemaDiffItem] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def summary(self) -> SchemaDiffSummary:
        """Per-type item counts."""
        return SchemaDiffSummary.from_items(self.items)

    @property
    def has_changes(self) -> bool:
        """True if there is at least one diff item."""
        return bool(self.items)

    def items_of(self, *types: DiffType) -> list[SchemaDiffItem]:
        """Items of the given types, in diff order."""
        return [item for item in self.items if item.type in types]

    def format_report(self) -> str:
        """Format the diff as a human-readable report."""
        if not self.items:
            return "Schemas match"

        lines = [
            f"Schema diff {self.source_schema} -> {self.target_schema} "
            f"({self.summary.total} changes):"
        ]
        for diff_type in DiffType:
            notes_by_label: dict[str, list[str]] = {}
            for item in self.items_of(diff_type):
                notes = notes_by_label.setdefault(item.label, [])
                notes.extend(n for n in item.notes if n not in notes)
            if not notes_by_label:
                continue
            lines.append(f"\n  {diff_type.value} ({len(notes_by_label)}):")
            for label, notes in notes_by_label.items():
                lines.append(f"    - {label}")
                for note in notes:
                    lines.append(f"      note: {note}")

        return "\n".join(lines)
