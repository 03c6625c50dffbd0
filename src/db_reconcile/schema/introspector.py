"""PostgreSQL-family schema introspection via pg_catalog.

This module queries the live database to build a ``DatabaseSchema``:
- Extensions, collations, enums, domains, composite types, sequences
- Tables: columns, constraints, indexes, partitioning, comments
- Functions and triggers (opt-in)
- Views, materialized views, foreign servers and foreign tables

Uses psycopg (v3) ``AsyncConnection`` for PostgreSQL, CockroachDB, Nile,
Aurora DSQL and Xata.  MySQL and SQLite are introspected through a
``DatabaseClient`` (see ``introspector_mysql`` / ``introspector_sqlite``);
``introspect_database`` routes to the right one.

Queries run one step at a time.  Steps the dialect lacks are skipped up
front; a catalog query the server rejects as unsupported is logged and
skipped.

Usage:
    async with SchemaIntrospector(url, get_dialect("postgres")) as introspector:
        schema = await introspector.introspect()
"""

import logging
import re
from collections.abc import Callable
from typing import Any

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row

from db_reconcile.adapters.base import DatabaseClient
from db_reconcile.dialects import Dialect
from db_reconcile.errors import ConnectivityError
from db_reconcile.schema.models import (
    Collation,
    Column,
    CompositeAttribute,
    CompositeType,
    Constraint,
    DatabaseSchema,
    Domain,
    EnumType,
    Extension,
    ForeignServer,
    ForeignTable,
    Function,
    FunctionArg,
    GeneratedColumn,
    Index,
    PartitionChild,
    Partitioning,
    Sequence,
    Table,
    Trigger,
    View,
)
from db_reconcile.schema.types import canonicalize_type, nextval_sequence

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str | None], None]

# Catalog errors that mean "this server does not have that feature"
_UNSUPPORTED_ERRORS = (
    psycopg.errors.FeatureNotSupported,
    psycopg.errors.UndefinedTable,
    psycopg.errors.UndefinedColumn,
    psycopg.errors.UndefinedFunction,
)

_FK_ACTIONS = {
    "a": None,
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

_ARG_MODES = {"i": "IN", "o": "OUT", "b": "INOUT", "v": "VARIADIC", "t": "OUT"}

_CHECK_RE = re.compile(r"^CHECK\s*\((.*)\)(?:\s+NOT\s+VALID)?$", re.DOTALL)
_WHEN_RE = re.compile(r"\bWHEN\s*\((.*)\)\s+EXECUTE\s", re.DOTALL)

_SERIAL_BY_STORAGE = {"integer": "serial", "bigint": "bigserial", "smallint": "smallserial"}


def to_libpq_url(url: str) -> str:
    """Rewrite dialect URL schemes (``cockroachdb://``, ``nile://``, ...) for libpq.

    Example:
        >>> to_libpq_url("postgresql+asyncpg://u@h/db")
        'postgresql://u@h/db'
    """
    _, sep, rest = url.partition("://")
    return f"postgresql://{rest}" if sep else url


def _options(raw: list[str] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for option in raw or []:
        key, _, value = option.partition("=")
        if key:
            result[key] = value
    return result


def _events(tgtype: int) -> list[str]:
    events = []
    for bit, name in ((4, "INSERT"), (16, "UPDATE"), (8, "DELETE"), (32, "TRUNCATE")):
        if tgtype & bit:
            events.append(name)
    return events


class SchemaIntrospector:
    """Introspects a PostgreSQL-family database.

    Works with any server speaking the PostgreSQL catalog (PostgreSQL,
    CockroachDB, Nile, Aurora DSQL, Xata).

    Usage:
        async with SchemaIntrospector(database_url, dialect) as introspector:
            schema = await introspector.introspect(include_functions=True)
    """

    # Tables to exclude from introspection (system tables)
    EXCLUDED_TABLES = {
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(
        self,
        database_url: str,
        dialect: Dialect,
        connect_timeout: int = 10,
        excluded_tables: set[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self._database_url = to_libpq_url(database_url)
        self._dialect = dialect
        self._connect_timeout = connect_timeout
        self._excluded = self.EXCLUDED_TABLES | (excluded_tables or set())
        self._on_progress = on_progress
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Context manager entry - opens connection."""
        self._progress("connecting")
        try:
            self._conn = await AsyncConnection.connect(
                self._database_url,
                autocommit=True,
                connect_timeout=self._connect_timeout,
                row_factory=dict_row,
            )
        except psycopg.OperationalError as e:
            raise ConnectivityError.from_exception(e) from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _progress(self, step: str, detail: str | None = None) -> None:
        logger.debug("Introspection step: %s %s", step, detail or "")
        if self._on_progress:
            self._on_progress(step, detail)

    async def _fetch(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self._conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    async def _optional(self, step: str, coro) -> list:
        """Run an optional step, skipping it when the server lacks the catalog."""
        try:
            return await coro
        except _UNSUPPORTED_ERRORS as e:
            logger.warning(
                "Skipping %s on %s: %s", step, self._dialect.display_name, e
            )
            return []

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def introspect(
        self,
        schema_name: str = "public",
        include_functions: bool = False,
        include_triggers: bool = False,
        include_views: bool = True,
    ) -> DatabaseSchema:
        """Introspect the full schema.

        Args:
            schema_name: Schema to introspect (default: public).
            include_functions: Also read functions and procedures.
            include_triggers: Also read triggers.
            include_views: Read views and materialized views.

        Returns:
            DatabaseSchema with every supported object kind.
        """
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")

        caps = self._dialect.capabilities
        schema = DatabaseSchema()

        self._progress("fetching_extensions")
        schema.extensions = await self._optional("extensions", self._get_extensions())
        schema.collations = await self._optional("collations", self._get_collations(schema_name))

        self._progress("fetching_types")
        if caps.supports_enums:
            schema.enums = await self._optional("enums", self._get_enums(schema_name))
        schema.domains = await self._optional("domains", self._get_domains(schema_name))
        if caps.supports_composite_types:
            schema.composite_types = await self._optional(
                "composite types", self._get_composite_types(schema_name)
            )

        self._progress("fetching_tables")
        schema.tables = await self._get_tables(schema_name)

        if caps.supports_sequences:
            self._progress("fetching_sequences")
            owned_by_serial = {
                nextval_sequence(c.default)
                for t in schema.tables
                for c in t.columns
                if c.data_type in _SERIAL_BY_STORAGE.values()
            }
            sequences = await self._optional("sequences", self._get_sequences(schema_name))
            schema.sequences = [s for s in sequences if s.name not in owned_by_serial]

        for table in schema.tables:
            for column in table.columns:
                if column.data_type in _SERIAL_BY_STORAGE.values():
                    column.default = None

        if include_functions and caps.supports_stored_procedures:
            self._progress("fetching_functions")
            schema.functions = await self._optional("functions", self._get_functions(schema_name))
        if include_triggers and caps.supports_triggers:
            self._progress("fetching_triggers")
            schema.triggers = await self._optional("triggers", self._get_triggers(schema_name))

        if include_views:
            self._progress("fetching_views")
            schema.views = await self._optional("views", self._get_views(schema_name))
        if include_views and caps.supports_materialized_views:
            schema.materialized_views = await self._optional(
                "materialized views", self._get_materialized_views(schema_name)
            )

        if caps.supports_foreign_tables:
            self._progress("fetching_foreign_objects")
            schema.foreign_servers = await self._optional(
                "foreign servers", self._get_foreign_servers()
            )
            schema.foreign_tables = await self._optional(
                "foreign tables", self._get_foreign_tables(schema_name)
            )

        self._progress("done")
        return schema

    # ------------------------------------------------------------------
    # Schema-level objects
    # ------------------------------------------------------------------

    async def _get_extensions(self) -> list[Extension]:
        rows = await self._fetch("""
            SELECT e.extname AS name, n.nspname AS schema_name, e.extversion AS version
            FROM pg_extension e
            JOIN pg_namespace n ON n.oid = e.extnamespace
            WHERE e.extname != 'plpgsql'
            ORDER BY e.extname
        """)
        return [Extension(**row) for row in rows]

    async def _get_collations(self, schema_name: str) -> list[Collation]:
        rows = await self._fetch("""
            SELECT c.collname AS name,
                   CASE c.collprovider WHEN 'i' THEN 'icu' WHEN 'd' THEN 'default' ELSE 'libc' END
                       AS provider,
                   c.collcollate AS locale,
                   c.collisdeterministic AS deterministic
            FROM pg_collation c
            JOIN pg_namespace n ON n.oid = c.collnamespace
            WHERE n.nspname = %s
            ORDER BY c.collname
        """, (schema_name,))
        return [Collation(**row) for row in rows]

    async def _get_enums(self, schema_name: str) -> list[EnumType]:
        rows = await self._fetch("""
            SELECT t.typname AS name,
                   array_agg(e.enumlabel ORDER BY e.enumsortorder) AS values
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            JOIN pg_enum e ON e.enumtypid = t.oid
            WHERE n.nspname = %s
            GROUP BY t.typname
            ORDER BY t.typname
        """, (schema_name,))
        return [EnumType(name=r["name"], values=list(r["values"]), schema_name=schema_name)
                for r in rows]

    async def _get_domains(self, schema_name: str) -> list[Domain]:
        rows = await self._fetch("""
            SELECT t.typname AS name,
                   format_type(t.typbasetype, t.typtypmod) AS base_type,
                   t.typnotnull AS not_null,
                   t.typdefault AS default,
                   (SELECT pg_get_constraintdef(c.oid) FROM pg_constraint c
                    WHERE c.contypid = t.oid AND c.contype = 'c' LIMIT 1) AS check_def
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            WHERE n.nspname = %s AND t.typtype = 'd'
            ORDER BY t.typname
        """, (schema_name,))
        domains = []
        for r in rows:
            check = _CHECK_RE.match(r["check_def"] or "")
            domains.append(Domain(
                name=r["name"],
                base_type=r["base_type"],
                not_null=r["not_null"],
                default=r["default"],
                check_expr=check.group(1) if check else None,
                schema_name=schema_name,
            ))
        return domains

    async def _get_composite_types(self, schema_name: str) -> list[CompositeType]:
        rows = await self._fetch("""
            SELECT t.typname AS name, a.attname AS attribute,
                   format_type(a.atttypid, a.atttypmod) AS data_type
            FROM pg_type t
            JOIN pg_namespace n ON n.oid = t.typnamespace
            JOIN pg_class c ON c.oid = t.typrelid AND c.relkind = 'c'
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum > 0 AND NOT a.attisdropped
            WHERE n.nspname = %s AND t.typtype = 'c'
            ORDER BY t.typname, a.attnum
        """, (schema_name,))
        types: dict[str, CompositeType] = {}
        for r in rows:
            composite = types.setdefault(
                r["name"], CompositeType(name=r["name"], schema_name=schema_name)
            )
            composite.attributes.append(
                CompositeAttribute(name=r["attribute"], data_type=r["data_type"])
            )
        return list(types.values())

    async def _get_sequences(self, schema_name: str) -> list[Sequence]:
        rows = await self._fetch("""
            SELECT s.sequencename AS name, s.data_type::text AS data_type,
                   s.start_value AS start, s.increment_by AS increment,
                   s.min_value, s.max_value, s.cache_size AS cache, s.cycle,
                   (SELECT t.relname || '.' || a.attname
                    FROM pg_depend d
                    JOIN pg_class t ON t.oid = d.refobjid
                    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = d.refobjsubid
                    WHERE d.objid = (quote_ident(s.schemaname) || '.' || quote_ident(s.sequencename))::regclass
                      AND d.deptype = 'a'
                    LIMIT 1) AS owned_by,
                   EXISTS (SELECT 1 FROM pg_depend d
                           WHERE d.objid = (quote_ident(s.schemaname) || '.' || quote_ident(s.sequencename))::regclass
                             AND d.deptype = 'i') AS is_identity
            FROM pg_sequences s
            WHERE s.schemaname = %s
            ORDER BY s.sequencename
        """, (schema_name,))
        return [
            Sequence(
                name=r["name"],
                data_type=r["data_type"],
                start=r["start"],
                increment=r["increment"],
                min_value=r["min_value"],
                max_value=r["max_value"],
                cache=r["cache"],
                cycle=r["cycle"],
                owned_by=r["owned_by"],
                schema_name=schema_name,
            )
            for r in rows
            if not r["is_identity"]
        ]

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def _get_tables(self, schema_name: str) -> list[Table]:
        rows = await self._fetch("""
            SELECT c.relname AS name,
                   obj_description(c.oid, 'pg_class') AS comment
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relkind IN ('r', 'p')
              AND NOT c.relispartition
            ORDER BY c.relname
        """, (schema_name,))
        names = [r for r in rows if r["name"] not in self._excluded]

        tables = []
        for position, row in enumerate(names, 1):
            name = row["name"]
            self._progress("parsing_table", f"{name} ({position}/{len(names)})")
            columns = await self._get_columns(schema_name, name)
            constraints = await self._get_constraints(schema_name, name)
            indexes = await self._get_indexes(schema_name, name)
            partitioning = None
            if self._dialect.capabilities.supports_table_partitioning:
                partitioning = await self._get_partitioning(schema_name, name)
            tables.append(Table(
                name=name,
                schema_name=schema_name,
                columns=columns,
                constraints=constraints,
                indexes=indexes,
                partitioning=partitioning,
                comment=row["comment"],
            ))
        return tables

    async def _get_columns(self, schema_name: str, table_name: str) -> list[Column]:
        rows = await self._fetch("""
            SELECT a.attname AS name,
                   a.attnum AS ordinal,
                   format_type(a.atttypid, a.atttypmod) AS data_type,
                   NOT a.attnotnull AS is_nullable,
                   pg_get_expr(d.adbin, d.adrelid) AS default_expr,
                   a.attidentity AS identity,
                   a.attgenerated AS generated,
                   col_description(a.attrelid, a.attnum) AS comment
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = %s
              AND c.relname = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """, (schema_name, table_name))

        columns = []
        for r in rows:
            parsed = canonicalize_type(r["data_type"])
            data_type = parsed.name
            default = r["default_expr"]
            generated = None
            if r["generated"] == "s":
                generated = GeneratedColumn(expression=default or "", stored=True)
                default = None
            elif (
                nextval_sequence(default)
                and parsed.name in _SERIAL_BY_STORAGE
                and not parsed.is_array
            ):
                # Serial pseudo-type; the owning sequence is filtered later
                data_type = _SERIAL_BY_STORAGE[parsed.name]
            identity = {"a": "ALWAYS", "d": "BY_DEFAULT"}.get(r["identity"] or "")
            columns.append(Column(
                name=r["name"],
                ordinal=r["ordinal"],
                data_type=data_type,
                length=parsed.length,
                precision=parsed.precision,
                scale=parsed.scale,
                is_array=parsed.is_array,
                is_nullable=r["is_nullable"],
                default=default,
                generated=generated,
                identity=identity,
                comment=r["comment"],
            ))
        return columns

    async def _get_constraints(self, schema_name: str, table_name: str) -> list[Constraint]:
        rows = await self._fetch("""
            SELECT con.conname AS name,
                   con.contype AS type,
                   ARRAY(
                       SELECT a.attname
                       FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
                       JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
                       ORDER BY k.ord
                   ) AS columns,
                   conf.relname AS references_table,
                   ARRAY(
                       SELECT a.attname
                       FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
                       JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
                       ORDER BY k.ord
                   ) AS references_columns,
                   con.confdeltype AS on_delete,
                   con.confupdtype AS on_update,
                   con.condeferrable AS deferrable,
                   pg_get_constraintdef(con.oid) AS definition
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_class conf ON conf.oid = con.confrelid
            WHERE n.nspname = %s
              AND c.relname = %s
              AND con.contype IN ('p', 'u', 'c', 'f', 'x')
            ORDER BY con.conname
        """, (schema_name, table_name))

        kinds = {"p": "PRIMARY_KEY", "u": "UNIQUE", "c": "CHECK", "f": "FOREIGN_KEY", "x": "EXCLUSION"}
        constraints = []
        for r in rows:
            kind = kinds[r["type"]]
            definition = r["definition"] or ""
            check_expr = None
            body = None
            if kind == "CHECK":
                match = _CHECK_RE.match(definition)
                check_expr = match.group(1) if match else definition
            elif kind == "EXCLUSION":
                body = definition[len("EXCLUDE "):] if definition.startswith("EXCLUDE ") else definition
            is_fk = kind == "FOREIGN_KEY"
            constraints.append(Constraint(
                name=r["name"],
                constraint_type=kind,
                columns=list(r["columns"] or []),
                check_expr=check_expr,
                definition=body,
                references_table=r["references_table"] if is_fk else None,
                references_columns=list(r["references_columns"] or []) if is_fk else [],
                on_delete=_FK_ACTIONS.get(r["on_delete"] or "a") if is_fk else None,
                on_update=_FK_ACTIONS.get(r["on_update"] or "a") if is_fk else None,
                deferrable=bool(r["deferrable"]),
            ))
        return constraints

    async def _get_indexes(self, schema_name: str, table_name: str) -> list[Index]:
        """Get indexes for a table, excluding those backing a constraint."""
        rows = await self._fetch("""
            SELECT i.relname AS name,
                   ARRAY(
                       SELECT a.attname
                       FROM unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
                       JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
                       ORDER BY k.ord
                   ) AS columns,
                   ix.indisunique AS is_unique,
                   am.amname AS method,
                   pg_get_expr(ix.indexprs, ix.indrelid) AS expression,
                   pg_get_expr(ix.indpred, ix.indrelid) AS predicate,
                   obj_description(i.oid, 'pg_class') AS comment
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_am am ON am.oid = i.relam
            WHERE n.nspname = %s
              AND t.relname = %s
              AND NOT EXISTS (
                  SELECT 1 FROM pg_constraint con WHERE con.conindid = ix.indexrelid
              )
            ORDER BY i.relname
        """, (schema_name, table_name))
        return [
            Index(
                name=r["name"],
                columns=[] if r["expression"] else list(r["columns"] or []),
                is_unique=r["is_unique"],
                method=r["method"],
                where=r["predicate"],
                expression=r["expression"],
                comment=r["comment"],
            )
            for r in rows
        ]

    async def _get_partitioning(self, schema_name: str, table_name: str) -> Partitioning | None:
        rows = await self._fetch("""
            SELECT CASE pt.partstrat WHEN 'r' THEN 'RANGE' WHEN 'l' THEN 'LIST' ELSE 'HASH' END
                       AS type,
                   ARRAY(
                       SELECT a.attname
                       FROM unnest(pt.partattrs) WITH ORDINALITY AS k(attnum, ord)
                       JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
                       ORDER BY k.ord
                   ) AS keys
            FROM pg_partitioned_table pt
            JOIN pg_class c ON c.oid = pt.partrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s AND c.relname = %s
        """, (schema_name, table_name))
        if not rows:
            return None
        children = await self._fetch("""
            SELECT child.relname AS name,
                   pg_get_expr(child.relpartbound, child.oid) AS bound
            FROM pg_inherits inh
            JOIN pg_class parent ON parent.oid = inh.inhparent
            JOIN pg_class child ON child.oid = inh.inhrelid
            JOIN pg_namespace n ON n.oid = parent.relnamespace
            WHERE n.nspname = %s AND parent.relname = %s
            ORDER BY child.relname
        """, (schema_name, table_name))
        return Partitioning(
            type=rows[0]["type"],
            keys=list(rows[0]["keys"] or []),
            children=[PartitionChild(name=c["name"], bound=c["bound"] or "") for c in children],
        )

    # ------------------------------------------------------------------
    # Programmable objects
    # ------------------------------------------------------------------

    async def _get_functions(self, schema_name: str) -> list[Function]:
        """Get user-defined functions and procedures.

        Functions owned by extensions and C/internal language functions
        are excluded.
        """
        rows = await self._fetch("""
            SELECT p.proname AS name,
                   p.prokind AS kind,
                   l.lanname AS language,
                   CASE WHEN p.prokind = 'p' THEN NULL
                        ELSE pg_get_function_result(p.oid) END AS return_type,
                   p.prosrc AS body,
                   p.provolatile AS volatility,
                   p.proisstrict AS is_strict,
                   p.prosecdef AS security_definer,
                   p.proargnames AS arg_names,
                   p.proargmodes::text[] AS arg_modes,
                   ARRAY(
                       SELECT format_type(u.t, NULL)
                       FROM unnest(COALESCE(p.proallargtypes, p.proargtypes::oid[]))
                            WITH ORDINALITY AS u(t, ord)
                       ORDER BY u.ord
                   ) AS arg_types
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            JOIN pg_language l ON l.oid = p.prolang
            WHERE n.nspname = %s
              AND p.prokind IN ('f', 'p')
              AND l.lanname NOT IN ('c', 'internal')
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = p.oid AND d.deptype = 'e'
              )
            ORDER BY p.proname
        """, (schema_name,))

        functions = []
        for r in rows:
            names = list(r["arg_names"] or [])
            modes = list(r["arg_modes"] or [])
            args = []
            for i, data_type in enumerate(r["arg_types"] or []):
                args.append(FunctionArg(
                    name=(names[i] or None) if i < len(names) else None,
                    data_type=data_type,
                    mode=_ARG_MODES.get(modes[i], "IN") if i < len(modes) else "IN",
                ))
            functions.append(Function(
                name=r["name"],
                kind="procedure" if r["kind"] == "p" else "function",
                args=args,
                return_type=r["return_type"],
                language=r["language"],
                body=(r["body"] or "").strip(),
                volatility={"i": "IMMUTABLE", "s": "STABLE"}.get(r["volatility"], "VOLATILE"),
                is_strict=r["is_strict"],
                security_definer=r["security_definer"],
                schema_name=schema_name,
            ))
        return functions

    async def _get_triggers(self, schema_name: str) -> list[Trigger]:
        """Get triggers, skipping internal ones and those on partitions."""
        rows = await self._fetch("""
            SELECT t.tgname AS name,
                   c.relname AS table_name,
                   t.tgtype AS tgtype,
                   p.proname AS function_name,
                   pg_get_triggerdef(t.oid) AS definition
            FROM pg_trigger t
            JOIN pg_class c ON c.oid = t.tgrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_proc p ON p.oid = t.tgfoid
            WHERE n.nspname = %s
              AND NOT t.tgisinternal
              AND NOT EXISTS (SELECT 1 FROM pg_inherits i WHERE i.inhrelid = c.oid)
            ORDER BY c.relname, t.tgname
        """, (schema_name,))

        triggers = []
        for r in rows:
            tgtype = r["tgtype"]
            if tgtype & 64:
                timing = "INSTEAD_OF"
            elif tgtype & 2:
                timing = "BEFORE"
            else:
                timing = "AFTER"
            when = _WHEN_RE.search(r["definition"] or "")
            triggers.append(Trigger(
                name=r["name"],
                table=r["table_name"],
                events=_events(tgtype),
                timing=timing,
                for_each="ROW" if tgtype & 1 else "STATEMENT",
                when=when.group(1) if when else None,
                function_name=r["function_name"],
            ))
        return triggers

    async def _get_views(self, schema_name: str) -> list[View]:
        rows = await self._fetch("""
            SELECT v.viewname AS name, v.definition,
                   obj_description((quote_ident(v.schemaname) || '.' || quote_ident(v.viewname))::regclass,
                                   'pg_class') AS comment
            FROM pg_views v
            WHERE v.schemaname = %s
            ORDER BY v.viewname
        """, (schema_name,))
        return [
            View(name=r["name"], definition=(r["definition"] or "").strip().rstrip(";"),
                 schema_name=schema_name, comment=r["comment"])
            for r in rows
            if r["name"] not in self._excluded
        ]

    async def _get_materialized_views(self, schema_name: str) -> list[View]:
        rows = await self._fetch("""
            SELECT m.matviewname AS name, m.definition
            FROM pg_matviews m
            WHERE m.schemaname = %s
            ORDER BY m.matviewname
        """, (schema_name,))
        return [
            View(name=r["name"], definition=(r["definition"] or "").strip().rstrip(";"),
                 schema_name=schema_name)
            for r in rows
        ]

    async def _get_foreign_servers(self) -> list[ForeignServer]:
        rows = await self._fetch("""
            SELECT s.srvname AS name, w.fdwname AS wrapper, s.srvoptions AS options
            FROM pg_foreign_server s
            JOIN pg_foreign_data_wrapper w ON w.oid = s.srvfdw
            ORDER BY s.srvname
        """)
        return [
            ForeignServer(name=r["name"], wrapper=r["wrapper"], options=_options(r["options"]))
            for r in rows
        ]

    async def _get_foreign_tables(self, schema_name: str) -> list[ForeignTable]:
        rows = await self._fetch("""
            SELECT c.relname AS name, s.srvname AS server, ft.ftoptions AS options
            FROM pg_foreign_table ft
            JOIN pg_class c ON c.oid = ft.ftrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_foreign_server s ON s.oid = ft.ftserver
            WHERE n.nspname = %s
            ORDER BY c.relname
        """, (schema_name,))
        tables = []
        for r in rows:
            columns = await self._get_columns(schema_name, r["name"])
            tables.append(ForeignTable(
                name=r["name"],
                server=r["server"],
                columns=columns,
                options=_options(r["options"]),
                schema_name=schema_name,
            ))
        return tables


# ------------------------------------------------------------------
# Router
# ------------------------------------------------------------------


async def introspect_database(
    database_url: str,
    dialect: Dialect,
    include_functions: bool = False,
    include_triggers: bool = False,
    include_views: bool = False,
    on_progress: ProgressCallback | None = None,
    client: DatabaseClient | None = None,
    connect_timeout: int = 10,
    excluded_tables: set[str] | None = None,
) -> DatabaseSchema:
    """Introspect any supported database into a ``DatabaseSchema``.

    PostgreSQL-family and Xata databases are read with psycopg; MySQL and
    SQLite families go through a ``DatabaseClient`` (created and closed
    here when *client* is not given).

    Args:
        database_url: Connection URL of the target database.
        dialect: Target dialect; its family picks the introspector.
        include_functions: Also read functions and procedures.
        include_triggers: Also read triggers.
        include_views: Also read views (and materialized views).
        on_progress: Called with ``(step, detail)`` for each step.
        client: Existing client for the MySQL and SQLite families.
        connect_timeout: Seconds to wait for a connection.
        excluded_tables: Table names never read (e.g. the tracking table).

    Returns:
        The observed schema, objects sorted by name within each kind.
    """
    excluded = set(excluded_tables or ())
    if dialect.family in ("postgres", "xata"):
        from db_reconcile.schema.validator import NILE_BUILTIN_TABLES

        if dialect.name == "nile":
            excluded |= set(NILE_BUILTIN_TABLES)
        async with SchemaIntrospector(
            database_url,
            dialect,
            connect_timeout=connect_timeout,
            excluded_tables=excluded,
            on_progress=on_progress,
        ) as introspector:
            return await introspector.introspect(
                include_functions=include_functions,
                include_triggers=include_triggers,
                include_views=include_views,
            )

    from db_reconcile.adapters.engine import AsyncSQLAlchemyAdapter
    from db_reconcile.schema.introspector_mysql import MySQLIntrospector
    from db_reconcile.schema.introspector_sqlite import SQLiteIntrospector

    owns_client = client is None
    if client is None:
        client = AsyncSQLAlchemyAdapter(database_url, dialect, connect_timeout=connect_timeout)
    try:
        if dialect.family == "mysql":
            introspector = MySQLIntrospector(client, on_progress, excluded)
        else:
            introspector = SQLiteIntrospector(client, on_progress, excluded)
        return await introspector.introspect(
            include_functions=include_functions,
            include_triggers=include_triggers,
            include_views=include_views,
        )
    finally:
        if owns_client:
            await client.close()


def project_schema(schema: DatabaseSchema, dialect: Dialect) -> DatabaseSchema:
    """Return *schema* as the target dialect would report it back.

    Column types are spelled for the dialect and read back through that
    family's introspection mapping, so an authored ``uuid`` column compares
    equal to the ``CHAR(36)`` MySQL stores.  MySQL enums become per-column
    ``<table>_<column>`` enums; SQLite enum columns become ``text``.
    PostgreSQL-family schemas are returned unchanged.
    """
    if dialect.family in ("postgres", "xata"):
        return schema

    from db_reconcile.schema import introspector_mysql, introspector_sqlite
    from db_reconcile.schema.types import is_serial

    projected = schema.model_copy(deep=True)
    enums = {e.name: e for e in projected.enums}
    column_enums: list[EnumType] = []

    for table in projected.tables:
        for column in table.columns:
            if column.data_type in enums:
                if dialect.family == "mysql":
                    enum = EnumType(
                        name=f"{table.name}_{column.name}",
                        values=list(enums[column.data_type].values),
                        tracking_id=enums[column.data_type].tracking_id,
                    )
                    column_enums.append(enum)
                    column.data_type = enum.name
                else:
                    column.data_type = "text"
                continue
            if dialect.family == "sqlite":
                if is_serial(column.data_type):
                    column.data_type = "serial"
                    continue
                parsed = introspector_sqlite.canonical_type(
                    dialect.translate_type(column.data_type, is_array=column.is_array)
                )
            else:
                native = dialect.translate_type(
                    column.data_type, column.length, column.precision, column.scale,
                    column.is_array,
                )
                parsed = introspector_mysql.canonical_type(native)
            column.data_type = parsed.name
            column.length = parsed.length
            column.precision = parsed.precision
            column.scale = parsed.scale
            column.is_array = False

    projected.enums = sorted(column_enums, key=lambda e: e.name) if dialect.family == "mysql" else []
    return projected
