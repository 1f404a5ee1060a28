"""Row identity keys and content digests.

Keys are tuples of canonicalized primary-key values, so composite keys
never collide the way delimiter-joined strings can.  Canonicalization
also lets the same row compare equal when two drivers return different
Python types for it (``Decimal`` vs ``float``, ``UUID`` vs ``str``,
``bool`` vs ``int``, ``datetime`` vs the text SQLite stores for it).

Example:
    >>> row_key({"id": 1, "region": "eu"}, ["region", "id"])
    ('eu', 1)
    >>> canonical_value(Decimal("1.50")) == canonical_value(1.5)
    True
"""

import hashlib
import json
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

RowKey = tuple[Any, ...]

# ISO 8601 date-time with the "T" separator
_ISO_DATETIME = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


def canonical_value(value: Any) -> Any:
    """Normalize a driver value into a hashable, engine-neutral form."""
    if value is None:
        return value
    if isinstance(value, str):
        if _ISO_DATETIME.match(value):
            return f"{value[:10]} {value[11:]}"
        return value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return str(value.normalize())
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def row_key(row: dict[str, Any], primary_keys: list[str]) -> RowKey:
    """Structural identity key for a row."""
    return tuple(canonical_value(row[k]) for k in primary_keys)


def row_digest(row: dict[str, Any], columns: list[str]) -> str:
    """SHA-256 of a row's canonicalized values for ``columns``.

    Only equality of digests matters, so bytes are hex-encoded to keep the
    payload JSON-serializable.
    """
    values = []
    for column in columns:
        value = canonical_value(row.get(column))
        values.append(value.hex() if isinstance(value, bytes) else value)
    payload = json.dumps(values, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
