"""Dialect record and capability matrix.

A ``Dialect`` is an immutable record: capability flags, a canonical ->
dialect type map, a blocklist of unsupported types with alternatives,
identifier quoting, placeholder rendering and the migration tracking
table DDL.  The rest of the library is written as functions over this
record; nothing branches on a dialect name except through ``family``.
"""

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from db_reconcile.schema.types import canonicalize_type, format_type


Family = Literal["postgres", "mysql", "sqlite", "xata"]
PlaceholderStyle = Literal["dollar", "qmark", "colon"]

_PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")

# Canonical tracking-table columns, in insertion order
TRACKING_COLUMNS: tuple[str, ...] = (
    "id", "name", "filename", "hash", "batch",
    "sql_up", "sql_down", "source", "applied_at",
)


class Capabilities(BaseModel):
    """Feature flags of a dialect.

    Example:
        >>> caps = Capabilities()
        >>> caps.supports_enums
        True
        >>> "btree" in caps.supported_index_methods
        True
    """

    model_config = ConfigDict(frozen=True)

    supports_enums: bool = True
    supports_table_partitioning: bool = True
    supports_stored_procedures: bool = True
    supports_triggers: bool = True
    supports_foreign_tables: bool = True
    supports_composite_types: bool = True
    supports_materialized_views: bool = True
    supports_foreign_keys: bool = True
    supports_sequences: bool = True
    supports_deferrable_constraints: bool = True
    supports_array_columns: bool = True
    supports_identity_columns: bool = True
    supported_index_methods: frozenset[str] = frozenset(
        {"btree", "hash", "gin", "gist", "brin", "spgist"}
    )


class BlockedType(BaseModel):
    """A canonical type the dialect cannot store, with a suggestion."""

    model_config = ConfigDict(frozen=True)

    type_name: str
    alternative: str


class Dialect(BaseModel):
    """Immutable description of one SQL dialect.

    Example:
        >>> from db_reconcile.dialects import get_dialect
        >>> pg = get_dialect("postgres")
        >>> pg.quote_identifier("users")
        'users'
        >>> pg.quote_identifier("order")
        '"order"'
        >>> pg.placeholder(2)
        '$2'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    family: Family
    quote_char: str = '"'
    placeholder_style: PlaceholderStyle = "dollar"
    default_port: int | None = None
    default_user: str = ""
    capabilities: Capabilities = Field(default_factory=Capabilities)
    type_map: dict[str, str] = Field(default_factory=dict)
    type_params: bool = True
    blocked_types: tuple[BlockedType, ...] = ()
    transactional_ddl: bool = True
    tracking_table_template: str
    tracking_table_upgrades: tuple[str, ...] = ()
    tracking_order_column: str = "id"
    reserved_words: frozenset[str] = frozenset()
    url_schemes: tuple[str, ...] = ()
    host_suffixes: tuple[str, ...] = ()
    requires_transform: bool = False

    # ------------------------------------------------------------------
    # Identifiers and placeholders
    # ------------------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Quote unconditionally, doubling embedded quote characters."""
        escaped = identifier.replace(self.quote_char, self.quote_char * 2)
        return f"{self.quote_char}{escaped}{self.quote_char}"

    def needs_quoting(self, identifier: str) -> bool:
        """Return True for reserved words, mixed case or punctuation."""
        return (
            not _PLAIN_IDENTIFIER.match(identifier)
            or identifier.lower() in self.reserved_words
        )

    def quote_identifier(self, identifier: str) -> str:
        """Quote *identifier* only when required."""
        if self.needs_quoting(identifier):
            return self.quote(identifier)
        return identifier

    def placeholder(self, index: int) -> str:
        """Render the 1-based positional parameter placeholder."""
        if self.placeholder_style == "dollar":
            return f"${index}"
        if self.placeholder_style == "colon":
            return f":{index}"
        return "?"

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def blocked_type(self, type_name: str) -> BlockedType | None:
        """Return the blocklist entry for a canonical type, if any."""
        base = canonicalize_type(type_name).name
        return next((b for b in self.blocked_types if b.type_name == base), None)

    def translate_type(
        self,
        name: str,
        length: int | None = None,
        precision: int | None = None,
        scale: int | None = None,
        is_array: bool = False,
    ) -> str:
        """Spell a canonical type for this dialect.

        Mapped types drop their parameters when the mapping target already
        carries its own (``boolean`` -> ``TINYINT(1)``) or when the dialect
        ignores type parameters altogether.  Arrays on dialects without
        array columns map to the ``"[]"`` entry of the type map.

        Example:
            >>> from db_reconcile.dialects import get_dialect
            >>> get_dialect("mysql").translate_type("character varying", length=64)
            'VARCHAR(64)'
            >>> get_dialect("sqlite").translate_type("character varying", length=64)
            'TEXT'
        """
        if is_array and not self.capabilities.supports_array_columns:
            return self.type_map.get("[]", "TEXT")
        mapped = self.type_map.get(name)
        if mapped is None:
            if not self.type_params:
                return format_type(name, is_array=is_array)
            return format_type(name, length, precision, scale, is_array)
        if "(" in mapped or not self.type_params:
            return f"{mapped}[]" if is_array else mapped
        return format_type(mapped, length, precision, scale, is_array)

    # ------------------------------------------------------------------
    # Migration tracking table
    # ------------------------------------------------------------------

    def tracking_table_ddl(self, table_name: str) -> str:
        """``CREATE TABLE IF NOT EXISTS`` for the migration tracking table."""
        return self.tracking_table_template.format(
            table=self.quote_identifier(table_name)
        )

    def tracking_table_upgrade_statements(self, table_name: str) -> list[str]:
        """Idempotent evolution statements for older tracking tables."""
        table = self.quote_identifier(table_name)
        return [stmt.format(table=table) for stmt in self.tracking_table_upgrades]
