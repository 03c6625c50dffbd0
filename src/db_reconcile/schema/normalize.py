"""Hash-normalized view of the CSM for equality and fingerprinting.

Two schemas are *materially equal* when their normalized forms match:
comments and tracking ids are dropped, defaults are normalized, serial
pseudo-types collapse into their storage type, and object lists are
sorted by name.  Semantically ordered lists (index columns, enum values,
constraint columns) keep their order.
"""

import hashlib
import json
from typing import Any

from db_reconcile.schema.models import Column, DatabaseSchema, Table
from db_reconcile.schema.types import is_serial, nextval_sequence, normalize_default, storage_type


_DROPPED_FIELDS = {"tracking_id", "comment", "ordinal"}


def _strip(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip(v) for k, v in value.items() if k not in _DROPPED_FIELDS}
    if isinstance(value, list):
        return [_strip(v) for v in value]
    return value


def normalize_column(column: Column) -> dict[str, Any]:
    """Return the comparable form of a column."""
    data = _strip(column.model_dump())
    default = column.default
    if is_serial(column.data_type) or nextval_sequence(default):
        default = None
    data["data_type"] = storage_type(column.data_type)
    data["default"] = normalize_default(default)
    return data


def normalize_table(table: Table) -> dict[str, Any]:
    """Return the comparable form of a table, lists sorted by name."""
    data = _strip(table.model_dump(exclude={"columns"}))
    data["columns"] = sorted(
        (normalize_column(c) for c in table.columns), key=lambda c: c["name"]
    )
    data["indexes"] = sorted(data["indexes"], key=lambda i: i["name"])
    data["constraints"] = sorted(data["constraints"], key=lambda c: c["name"])
    return data


def normalize_schema(schema: DatabaseSchema) -> dict[str, Any]:
    """Return the comparable form of a whole schema.

    Example:
        >>> a = DatabaseSchema(extensions=["uuid-ossp", "citext"])
        >>> b = DatabaseSchema(extensions=["citext", "uuid-ossp"])
        >>> normalize_schema(a) == normalize_schema(b)
        True
    """
    data = _strip(schema.model_dump(exclude={"tables"}))
    data["tables"] = [normalize_table(t) for t in schema.tables]
    for kind, items in data.items():
        data[kind] = sorted(items, key=lambda obj: obj["name"])
    return data


def schema_hash(schema: DatabaseSchema) -> str:
    """SHA-256 fingerprint of the normalized schema."""
    payload = json.dumps(normalize_schema(schema), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def materially_equal(a: DatabaseSchema, b: DatabaseSchema) -> bool:
    """Return True when *a* and *b* differ only in comments and tracking ids."""
    return normalize_schema(a) == normalize_schema(b)
