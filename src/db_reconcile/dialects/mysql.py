"""MySQL family dialects: MySQL, MariaDB and PlanetScale (Vitess)."""

from db_reconcile.dialects.base import BlockedType, Capabilities, Dialect
from db_reconcile.dialects.reserved import ALL_RESERVED


MYSQL_TYPE_MAP: dict[str, str] = {
    "serial": "INT AUTO_INCREMENT",
    "bigserial": "BIGINT AUTO_INCREMENT",
    "smallserial": "SMALLINT AUTO_INCREMENT",
    "boolean": "TINYINT(1)",
    "bytea": "BLOB",
    "timestamp with time zone": "TIMESTAMP",
    "time with time zone": "TIME",
    "uuid": "CHAR(36)",
    "jsonb": "JSON",
    "inet": "VARCHAR(45)",
    "cidr": "VARCHAR(45)",
    "macaddr": "VARCHAR(17)",
    "double precision": "DOUBLE",
    "real": "FLOAT",
    "character varying": "VARCHAR",
    "character": "CHAR",
    "numeric": "DECIMAL",
    "[]": "JSON",
}

_MYSQL_TRACKING_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    id INT AUTO_INCREMENT PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    filename VARCHAR(255) NOT NULL,
    hash VARCHAR(255) NOT NULL,
    batch INT NOT NULL,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    execution_time_ms INT,
    sql_up LONGTEXT,
    sql_down LONGTEXT,
    source VARCHAR(16) DEFAULT 'push'
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;"""

_MYSQL_TRACKING_UPGRADES: tuple[str, ...] = (
    "ALTER TABLE {table} ADD COLUMN sql_up LONGTEXT",
    "ALTER TABLE {table} ADD COLUMN sql_down LONGTEXT",
    "ALTER TABLE {table} ADD COLUMN source VARCHAR(16) DEFAULT 'push'",
    "ALTER TABLE {table} MODIFY COLUMN hash VARCHAR(255) NOT NULL",
)

_MYSQL_BLOCKED: tuple[BlockedType, ...] = (
    BlockedType(type_name="money", alternative="Use DECIMAL(19,4)"),
    BlockedType(type_name="interval", alternative="Use an INT number of seconds"),
    BlockedType(type_name="tsvector", alternative="Use a FULLTEXT index"),
    BlockedType(type_name="xml", alternative="Use TEXT"),
)

_MYSQL_CAPABILITIES = Capabilities(
    supports_foreign_tables=False,
    supports_composite_types=False,
    supports_materialized_views=False,
    supports_sequences=False,
    supports_deferrable_constraints=False,
    supports_array_columns=False,
    supports_identity_columns=False,
    supported_index_methods=frozenset({"btree", "hash", "fulltext", "spatial"}),
)


MYSQL = Dialect(
    name="mysql",
    display_name="MySQL",
    family="mysql",
    quote_char="`",
    placeholder_style="qmark",
    default_port=3306,
    default_user="root",
    capabilities=_MYSQL_CAPABILITIES,
    type_map=MYSQL_TYPE_MAP,
    blocked_types=_MYSQL_BLOCKED,
    transactional_ddl=False,
    tracking_table_template=_MYSQL_TRACKING_TABLE,
    tracking_table_upgrades=_MYSQL_TRACKING_UPGRADES,
    reserved_words=ALL_RESERVED,
    url_schemes=("mysql",),
    requires_transform=True,
)

MARIADB = MYSQL.model_copy(update={
    "name": "mariadb",
    "display_name": "MariaDB",
    "capabilities": _MYSQL_CAPABILITIES.model_copy(update={"supports_sequences": True}),
    "url_schemes": ("mariadb",),
})

PLANETSCALE = MYSQL.model_copy(update={
    "name": "planetscale",
    "display_name": "PlanetScale",
    "capabilities": _MYSQL_CAPABILITIES.model_copy(update={
        "supports_foreign_keys": False,
        "supports_stored_procedures": False,
        "supports_triggers": False,
        "supports_table_partitioning": False,
    }),
    "url_schemes": ("planetscale",),
    "host_suffixes": ("psdb.cloud",),
})
