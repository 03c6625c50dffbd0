"""SQLite family dialects: SQLite and Turso (libSQL)."""

from db_reconcile.dialects.base import Capabilities, Dialect
from db_reconcile.dialects.reserved import ALL_RESERVED


# SQLite has type affinities, not types; every canonical type collapses
# onto one of INTEGER, REAL, TEXT, BLOB.
SQLITE_TYPE_MAP: dict[str, str] = {
    "serial": "INTEGER",
    "bigserial": "INTEGER",
    "smallserial": "INTEGER",
    "integer": "INTEGER",
    "bigint": "INTEGER",
    "smallint": "INTEGER",
    "boolean": "INTEGER",
    "bytea": "BLOB",
    "timestamp": "TEXT",
    "timestamp with time zone": "TEXT",
    "date": "TEXT",
    "time": "TEXT",
    "time with time zone": "TEXT",
    "interval": "TEXT",
    "uuid": "TEXT",
    "json": "TEXT",
    "jsonb": "TEXT",
    "text": "TEXT",
    "character varying": "TEXT",
    "character": "TEXT",
    "numeric": "REAL",
    "real": "REAL",
    "double precision": "REAL",
    "[]": "TEXT",
}

_SQLITE_TRACKING_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    filename TEXT NOT NULL,
    hash TEXT NOT NULL,
    batch INTEGER NOT NULL,
    applied_at TEXT DEFAULT CURRENT_TIMESTAMP,
    execution_time_ms INTEGER,
    sql_up TEXT,
    sql_down TEXT,
    source TEXT DEFAULT 'push'
);"""

_SQLITE_TRACKING_UPGRADES: tuple[str, ...] = (
    "ALTER TABLE {table} ADD COLUMN sql_up TEXT",
    "ALTER TABLE {table} ADD COLUMN sql_down TEXT",
    "ALTER TABLE {table} ADD COLUMN source TEXT DEFAULT 'push'",
)

_SQLITE_CAPABILITIES = Capabilities(
    supports_enums=False,
    supports_table_partitioning=False,
    supports_stored_procedures=False,
    supports_foreign_tables=False,
    supports_composite_types=False,
    supports_materialized_views=False,
    supports_sequences=False,
    supports_array_columns=False,
    supports_identity_columns=False,
    supported_index_methods=frozenset({"btree"}),
)


SQLITE = Dialect(
    name="sqlite",
    display_name="SQLite",
    family="sqlite",
    placeholder_style="qmark",
    default_port=None,
    capabilities=_SQLITE_CAPABILITIES,
    type_map=SQLITE_TYPE_MAP,
    type_params=False,
    tracking_table_template=_SQLITE_TRACKING_TABLE,
    tracking_table_upgrades=_SQLITE_TRACKING_UPGRADES,
    reserved_words=ALL_RESERVED,
    url_schemes=("sqlite", "file"),
    requires_transform=True,
)

TURSO = SQLITE.model_copy(update={
    "name": "turso",
    "display_name": "Turso",
    "url_schemes": ("libsql", "turso"),
    "host_suffixes": ("turso.io",),
})
