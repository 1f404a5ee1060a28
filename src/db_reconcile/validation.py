"""Safety checks for SQL statements before they are executed.

``validate_query()`` flags statements that affect whole tables or remove
objects (UPDATE/DELETE without WHERE, DROP, TRUNCATE) and rejects write
statements on read-only connections.  It is a keyword check, not a SQL
parser.

Usage:
    from db_reconcile.validation import validate_query

    result = validate_query("DELETE FROM users")
    if result.requires_confirmation:
        print(result.message)
"""

import re
from enum import Enum

from pydantic import BaseModel


class DangerousQueryType(str, Enum):
    UPDATE_NO_WHERE = "UPDATE_NO_WHERE"
    DELETE_NO_WHERE = "DELETE_NO_WHERE"
    DROP = "DROP"
    TRUNCATE = "TRUNCATE"


class QueryValidationResult(BaseModel):
    """Outcome of ``validate_query()``.

    ``is_valid`` is ``False`` when the statement must not run at all (a
    write on a read-only connection).  Dangerous statements stay valid on
    writable connections but require confirmation.
    """

    is_valid: bool = True
    is_dangerous: bool = False
    dangerous_type: DangerousQueryType | None = None
    message: str | None = None
    requires_confirmation: bool = False


DANGER_MESSAGES = {
    DangerousQueryType.UPDATE_NO_WHERE: "UPDATE statement without WHERE clause will affect all rows",
    DangerousQueryType.DELETE_NO_WHERE: "DELETE statement without WHERE clause will delete all rows",
    DangerousQueryType.DROP: "DROP statement will permanently remove database objects",
    DangerousQueryType.TRUNCATE: "TRUNCATE will delete all rows from the table",
}

WRITE_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
)

_COMMENTS = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)
_WHERE = re.compile(r"\bWHERE\b")
_DROP = re.compile(
    r"^DROP\s+(TABLE|INDEX|VIEW|SCHEMA|DATABASE|SEQUENCE|FUNCTION|TRIGGER)\b"
)


def _dangerous_type(sql: str) -> DangerousQueryType | None:
    if sql.startswith("UPDATE ") and not _WHERE.search(sql):
        return DangerousQueryType.UPDATE_NO_WHERE
    if sql.startswith("DELETE ") and not _WHERE.search(sql):
        return DangerousQueryType.DELETE_NO_WHERE
    if _DROP.match(sql):
        return DangerousQueryType.DROP
    if sql.startswith("TRUNCATE "):
        return DangerousQueryType.TRUNCATE
    return None


def validate_query(sql: str, read_only: bool = False) -> QueryValidationResult:
    """Check one SQL statement for dangerous or disallowed operations.

    Args:
        sql: Statement text.  Comments are ignored.
        read_only: Whether the target connection forbids writes.

    Returns:
        ``QueryValidationResult`` describing the first problem found.

    Example:
        >>> validate_query("UPDATE users SET active = false").dangerous_type
        <DangerousQueryType.UPDATE_NO_WHERE: 'UPDATE_NO_WHERE'>
        >>> validate_query("SELECT 1", read_only=True).is_valid
        True
    """
    normalized = " ".join(_COMMENTS.sub(" ", sql).split()).upper()

    dangerous = _dangerous_type(normalized)
    if dangerous is not None:
        return QueryValidationResult(
            is_valid=not read_only,
            is_dangerous=True,
            dangerous_type=dangerous,
            message=DANGER_MESSAGES[dangerous],
            requires_confirmation=True,
        )

    if read_only and normalized.startswith(tuple(f"{k} " for k in WRITE_KEYWORDS)):
        return QueryValidationResult(
            is_valid=False,
            message="Write operations are not allowed on read-only connections",
        )

    return QueryValidationResult()
