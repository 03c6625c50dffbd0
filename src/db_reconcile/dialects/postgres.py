"""PostgreSQL family dialects: PostgreSQL, CockroachDB, Nile and Aurora DSQL."""

from db_reconcile.dialects.base import BlockedType, Capabilities, Dialect
from db_reconcile.dialects.reserved import ALL_RESERVED


_SERIAL_TRACKING_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    filename VARCHAR(255) NOT NULL,
    hash VARCHAR(255) NOT NULL,
    batch INTEGER NOT NULL,
    applied_at TIMESTAMPTZ DEFAULT NOW(),
    execution_time_ms INTEGER,
    sql_up TEXT,
    sql_down TEXT,
    source TEXT DEFAULT 'push'
);"""

_UUID_TRACKING_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) NOT NULL,
    filename VARCHAR(255) NOT NULL,
    hash VARCHAR(255) NOT NULL,
    batch INTEGER NOT NULL,
    applied_at TIMESTAMPTZ DEFAULT NOW(),
    execution_time_ms INTEGER,
    sql_up TEXT,
    sql_down TEXT,
    source TEXT DEFAULT 'push'
);"""

PG_TRACKING_UPGRADES: tuple[str, ...] = (
    "ALTER TABLE {table} ADD COLUMN sql_up TEXT",
    "ALTER TABLE {table} ADD COLUMN sql_down TEXT",
    "ALTER TABLE {table} ADD COLUMN source TEXT DEFAULT 'push'",
    "ALTER TABLE {table} ALTER COLUMN hash TYPE VARCHAR(255)",
)

_GEOMETRIC = ("point", "line", "lseg", "box", "path", "polygon", "circle")
_RANGES = (
    "int4range", "int8range", "numrange", "tsrange", "tstzrange", "daterange",
)


POSTGRES = Dialect(
    name="postgres",
    display_name="PostgreSQL",
    family="postgres",
    default_port=5432,
    default_user="postgres",
    capabilities=Capabilities(),
    tracking_table_template=_SERIAL_TRACKING_TABLE,
    tracking_table_upgrades=PG_TRACKING_UPGRADES,
    reserved_words=ALL_RESERVED,
    url_schemes=("postgres", "postgresql"),
)

COCKROACHDB = Dialect(
    name="cockroachdb",
    display_name="CockroachDB",
    family="postgres",
    default_port=26257,
    default_user="root",
    capabilities=Capabilities(
        supports_triggers=False,
        supports_foreign_tables=False,
        supports_composite_types=False,
        supports_deferrable_constraints=False,
        supported_index_methods=frozenset({"btree", "hash", "gin", "gist"}),
    ),
    blocked_types=(
        BlockedType(type_name="money", alternative="Use DECIMAL(19,4)"),
        BlockedType(type_name="xml", alternative="Use TEXT or JSONB"),
        *(
            BlockedType(type_name=t, alternative="Use GEOMETRY with spatial indexes")
            for t in _GEOMETRIC
        ),
        *(
            BlockedType(type_name=t, alternative="Use separate lower/upper bound columns")
            for t in _RANGES
        ),
        BlockedType(type_name="tsquery", alternative="Use inverted indexes on STRING columns"),
        BlockedType(type_name="cidr", alternative="Use INET"),
        BlockedType(type_name="macaddr", alternative="Use STRING"),
    ),
    tracking_table_template=_UUID_TRACKING_TABLE,
    tracking_table_upgrades=PG_TRACKING_UPGRADES,
    reserved_words=ALL_RESERVED,
    url_schemes=("cockroachdb", "cockroach"),
    host_suffixes=("cockroachlabs.cloud",),
)

NILE = Dialect(
    name="nile",
    display_name="Nile",
    family="postgres",
    default_port=5432,
    default_user="",
    capabilities=Capabilities(
        supports_table_partitioning=False,
        supports_stored_procedures=False,
        supports_triggers=False,
        supports_foreign_tables=False,
    ),
    tracking_table_template=_SERIAL_TRACKING_TABLE,
    tracking_table_upgrades=PG_TRACKING_UPGRADES,
    reserved_words=ALL_RESERVED,
    url_schemes=("nile",),
    host_suffixes=("thenile.dev",),
)

DSQL = Dialect(
    name="dsql",
    display_name="Aurora DSQL",
    family="postgres",
    default_port=5432,
    default_user="admin",
    capabilities=Capabilities(
        supports_enums=False,
        supports_table_partitioning=False,
        supports_stored_procedures=False,
        supports_triggers=False,
        supports_foreign_tables=False,
        supports_composite_types=False,
        supports_materialized_views=False,
        supports_foreign_keys=False,
        supports_sequences=False,
        supports_deferrable_constraints=False,
        supports_array_columns=False,
        supports_identity_columns=False,
        supported_index_methods=frozenset({"btree"}),
    ),
    type_map={"[]": "TEXT"},
    blocked_types=(
        *(
            BlockedType(
                type_name=t,
                alternative="Use UUID DEFAULT gen_random_uuid() or application-generated ids",
            )
            for t in ("serial", "bigserial", "smallserial")
        ),
        BlockedType(type_name="json", alternative="Use TEXT and parse in the application"),
        BlockedType(type_name="jsonb", alternative="Use TEXT and parse in the application"),
        BlockedType(type_name="xml", alternative="Use TEXT"),
        BlockedType(type_name="inet", alternative="Use TEXT"),
        BlockedType(type_name="cidr", alternative="Use TEXT"),
        *(BlockedType(type_name=t, alternative="Use numeric columns") for t in _GEOMETRIC),
        *(
            BlockedType(type_name=t, alternative="Use separate lower/upper bound columns")
            for t in _RANGES
        ),
    ),
    transactional_ddl=False,
    tracking_table_template=_UUID_TRACKING_TABLE,
    tracking_table_upgrades=PG_TRACKING_UPGRADES,
    tracking_order_column="applied_at",
    reserved_words=ALL_RESERVED,
    url_schemes=("dsql",),
    host_suffixes=(".on.aws",),
)
