"""Cross-engine column type mapping.

Column types are compared verbatim (case-insensitive) between engines of
the same family.  Across families they are first reduced to a canonical
type family such as ``integer`` or ``varchar(255)``; types with no
family (enums, arrays, geometry ...) raise ``TypeMismatchError`` so the
comparator can flag them for manual review.

Example:
    >>> canonical_type("int(11)")
    'integer'
    >>> canonical_type("character varying(64)")
    'varchar(64)'
    >>> native_type("boolean", DatabaseEngine.MYSQL)
    'tinyint(1)'
"""

import re

from db_reconcile.adapters.base import DatabaseEngine
from db_reconcile.errors import TypeMismatchError

_FAMILIES: dict[str, set[str]] = {
    "integer": {
        "int", "integer", "int4", "int2", "smallint", "mediumint",
        "tinyint", "serial", "smallserial",
    },
    "bigint": {"bigint", "int8", "bigserial"},
    "boolean": {"boolean", "bool"},
    "decimal": {"numeric", "decimal"},
    "float": {
        "real", "float", "float4", "float8", "double", "double precision",
    },
    "text": {"text", "tinytext", "mediumtext", "longtext", "clob"},
    "varchar": {"varchar", "character varying", "nvarchar"},
    "char": {"char", "character", "bpchar", "nchar"},
    "blob": {
        "bytea", "blob", "tinyblob", "mediumblob", "longblob", "binary",
        "varbinary",
    },
    "date": {"date"},
    "time": {"time", "time without time zone", "time with time zone", "timetz"},
    "timestamp": {
        "timestamp", "timestamp without time zone",
        "timestamp with time zone", "timestamptz", "datetime",
    },
    "json": {"json", "jsonb"},
    "uuid": {"uuid"},
}

_BY_NAME = {name: family for family, names in _FAMILIES.items() for name in names}

# Families whose modifiers (length, precision) are part of the type
_SIZED = {"varchar", "char", "decimal"}

# family -> (postgres, mysql/mariadb, sqlite)
_NATIVE: dict[str, tuple[str, str, str]] = {
    "integer": ("integer", "int", "INTEGER"),
    "bigint": ("bigint", "bigint", "INTEGER"),
    "boolean": ("boolean", "tinyint(1)", "INTEGER"),
    "decimal": ("numeric", "decimal", "NUMERIC"),
    "float": ("double precision", "double", "REAL"),
    "text": ("text", "text", "TEXT"),
    "varchar": ("varchar", "varchar", "TEXT"),
    "char": ("char", "char", "TEXT"),
    "blob": ("bytea", "blob", "BLOB"),
    "date": ("date", "date", "TEXT"),
    "time": ("time", "time", "TEXT"),
    "timestamp": ("timestamp", "datetime", "TEXT"),
    "json": ("jsonb", "json", "TEXT"),
    "uuid": ("uuid", "char(36)", "TEXT"),
}

_TYPE_PATTERN = re.compile(r"^\s*([a-z][a-z0-9_ ]*?)\s*(?:\(([^)]*)\)\s*([a-z ]*))?$")


class UnknownTypeError(ValueError):
    """Raised by ``canonical_type`` for types outside every family."""


def canonical_type(data_type: str) -> str:
    """Reduce an engine-specific type to its canonical family.

    Raises:
        UnknownTypeError: If the type belongs to no known family.
    """
    lowered = data_type.lower().replace(" unsigned", "").replace(" zerofill", "")
    match = _TYPE_PATTERN.match(lowered)
    if match is None:
        raise UnknownTypeError(data_type)

    base, modifiers, suffix = match.group(1), match.group(2), (match.group(3) or "").strip()
    if suffix:
        # "timestamp(3) with time zone" -> "timestamp with time zone"
        base = f"{base} {suffix}"

    # MySQL spells booleans as tinyint(1)
    if base == "tinyint" and modifiers == "1":
        return "boolean"

    family = _BY_NAME.get(base)
    if family is None:
        raise UnknownTypeError(data_type)
    if family in _SIZED and modifiers:
        return f"{family}({modifiers.replace(' ', '')})"
    return family


def types_equal(
    column: str,
    source_type: str,
    target_type: str,
    source_engine: DatabaseEngine,
    target_engine: DatabaseEngine,
) -> bool:
    """Compare two column types, mapping through families across engines.

    Raises:
        TypeMismatchError: If either type cannot be mapped across engines.
    """
    if source_type.lower() == target_type.lower():
        return True
    if source_engine.same_family(target_engine):
        return False
    try:
        return canonical_type(source_type) == canonical_type(target_type)
    except UnknownTypeError as e:
        raise TypeMismatchError(column, source_type, target_type) from e


def native_type(canonical: str, engine: DatabaseEngine) -> str:
    """Spell a canonical type for ``engine``.

    Modifiers are kept except on SQLite, whose type affinity ignores them.
    """
    family, _, rest = canonical.partition("(")
    postgres, mysql, sqlite = _NATIVE[family]
    if engine is DatabaseEngine.POSTGRES:
        name = postgres
    elif engine.is_mysql_family:
        name = mysql
    else:
        name = sqlite
    if rest and engine is not DatabaseEngine.SQLITE:
        return f"{name}({rest}"
    if family == "varchar" and engine.is_mysql_family:
        return "varchar(255)"
    return name


def translate_type(
    data_type: str, source_engine: DatabaseEngine, target_engine: DatabaseEngine
) -> str | None:
    """Rewrite ``data_type`` for ``target_engine``.

    Returns:
        The translated type, or ``None`` if the type has no family.
    """
    if source_engine.same_family(target_engine):
        return data_type
    try:
        return native_type(canonical_type(data_type), target_engine)
    except UnknownTypeError:
        return None
