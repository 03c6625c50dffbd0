"""Xata, reached through its PostgreSQL-compatible endpoint."""

from db_reconcile.dialects.base import Capabilities, Dialect
from db_reconcile.dialects.postgres import PG_TRACKING_UPGRADES
from db_reconcile.dialects.reserved import ALL_RESERVED


_XATA_TRACKING_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    name TEXT NOT NULL,
    filename TEXT NOT NULL,
    hash TEXT NOT NULL,
    batch INTEGER NOT NULL,
    applied_at TIMESTAMPTZ DEFAULT NOW(),
    execution_time_ms INTEGER,
    sql_up TEXT,
    sql_down TEXT,
    source TEXT DEFAULT 'push'
);"""


XATA = Dialect(
    name="xata",
    display_name="Xata",
    family="xata",
    default_port=443,
    default_user="",
    capabilities=Capabilities(
        supports_enums=False,
        supports_table_partitioning=False,
        supports_stored_procedures=False,
        supports_triggers=False,
        supports_foreign_tables=False,
        supports_composite_types=False,
        supports_materialized_views=False,
        supports_sequences=False,
        supports_deferrable_constraints=False,
        supports_identity_columns=False,
        supported_index_methods=frozenset({"btree"}),
    ),
    tracking_table_template=_XATA_TRACKING_TABLE,
    tracking_table_upgrades=PG_TRACKING_UPGRADES[:3],
    tracking_order_column="applied_at",
    reserved_words=ALL_RESERVED,
    url_schemes=("xata",),
    host_suffixes=("xata.sh",),
)
