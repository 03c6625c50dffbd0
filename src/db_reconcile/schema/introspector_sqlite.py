"""SQLite-family schema introspection via sqlite_master and pragmas.

SQLite keeps the declared type of each column but stores values by
affinity, so declared types are mapped onto canonical names (``INTEGER``
-> ``integer``, ``BLOB`` -> ``bytea``) and anything else goes through the
regular canonicalizer.  Constraint names SQLite does not record follow the
PostgreSQL conventions (``users_pkey``, ``orders_user_id_fkey``,
``users_email_key``) so they line up with authored schemas.

Usage:
    introspector = SQLiteIntrospector(client)
    schema = await introspector.introspect()
"""

import logging
import re

from db_reconcile.adapters.base import DatabaseClient
from db_reconcile.schema.introspector import ProgressCallback
from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    GeneratedColumn,
    Index,
    Table,
    Trigger,
    View,
)
from db_reconcile.schema.types import ParsedType, canonicalize_type

logger = logging.getLogger(__name__)

DECLARED_TYPES: dict[str, str] = {
    "integer": "integer",
    "int": "integer",
    "text": "text",
    "clob": "text",
    "real": "real",
    "float": "real",
    "double": "real",
    "blob": "bytea",
    "numeric": "numeric",
    "boolean": "boolean",
    "datetime": "timestamp",
}

_CHECK_RE = re.compile(r"(?:CONSTRAINT\s+[\"`\[]?(\w+)[\"`\]]?\s+)?CHECK\s*\(", re.IGNORECASE)
_INDEX_WHERE_RE = re.compile(r"\)\s*WHERE\s+(.*)$", re.IGNORECASE | re.DOTALL)
_VIEW_RE = re.compile(
    r"^\s*CREATE\s+(?:TEMP(?:ORARY)?\s+)?VIEW\s+(?:IF\s+NOT\s+EXISTS\s+)?\S+\s+AS\s+(.*)$",
    re.IGNORECASE | re.DOTALL,
)
_TIMING_RE = re.compile(r"\b(BEFORE|AFTER|INSTEAD\s+OF)\b", re.IGNORECASE)
_EVENT_RE = re.compile(r"\b(INSERT|UPDATE|DELETE)\b", re.IGNORECASE)
_WHEN_RE = re.compile(r"\bWHEN\s+(.*?)\s*$", re.IGNORECASE | re.DOTALL)


def canonical_type(declared: str | None) -> ParsedType:
    """Map a declared SQLite column type onto a canonical ``ParsedType``.

    Examples:
        >>> canonical_type("INTEGER").name
        'integer'
        >>> canonical_type("varchar(64)").length
        64
        >>> canonical_type(None).name
        'bytea'
    """
    text = " ".join((declared or "").strip().lower().split())
    if not text:
        return ParsedType("bytea")
    if text in DECLARED_TYPES:
        return ParsedType(DECLARED_TYPES[text])
    return canonicalize_type(text)


def _parenthesized(sql: str, open_at: int) -> str:
    """Text inside the parentheses opening at *open_at*, quotes respected."""
    depth = 0
    quote: str | None = None
    for i in range(open_at, len(sql)):
        ch = sql[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return sql[open_at + 1:i].strip()
    return sql[open_at + 1:].strip()


def _generated_expression(table_sql: str, column: str) -> str:
    """Expression of a generated column, read from the CREATE TABLE text."""
    pattern = re.compile(
        rf"[\"`\[]?{re.escape(column)}[\"`\]]?\s[^,]*?\bAS\s*\(", re.IGNORECASE
    )
    match = pattern.search(table_sql)
    if not match:
        return ""
    return _parenthesized(table_sql, match.end() - 1)


def _check_constraints(table_name: str, table_sql: str) -> list[Constraint]:
    checks = []
    for position, match in enumerate(_CHECK_RE.finditer(table_sql), 1):
        name = match.group(1) or (
            f"{table_name}_check" if position == 1 else f"{table_name}_check{position}"
        )
        checks.append(Constraint(
            name=name,
            constraint_type="CHECK",
            check_expr=_parenthesized(table_sql, match.end() - 1),
        ))
    return checks


def parse_trigger(name: str, table: str, sql: str) -> Trigger:
    """Build a ``Trigger`` from its ``CREATE TRIGGER`` text.

    Only the header (before ``BEGIN``) is inspected, so statements in the
    body do not leak into the event list.
    """
    header = re.split(r"\bBEGIN\b", sql, maxsplit=1, flags=re.IGNORECASE)[0]
    on_split = re.split(r"\bON\b", header, maxsplit=1, flags=re.IGNORECASE)
    timing_match = _TIMING_RE.search(on_split[0])
    timing = "AFTER"
    if timing_match:
        timing = timing_match.group(1).upper()
        if timing.startswith("INSTEAD"):
            timing = "INSTEAD_OF"
    events = [e.upper() for e in _EVENT_RE.findall(on_split[0])] or ["INSERT"]
    when = None
    if len(on_split) > 1:
        when_match = _WHEN_RE.search(on_split[1])
        when = when_match.group(1) if when_match else None
    return Trigger(
        name=name,
        table=table,
        events=events,
        timing=timing,
        # SQLite only has row-level triggers
        for_each="ROW",
        when=when,
        function_name=name,
    )


class SQLiteIntrospector:
    """Introspects a SQLite-family database through a ``DatabaseClient``."""

    def __init__(
        self,
        client: DatabaseClient,
        on_progress: ProgressCallback | None = None,
        excluded_tables: set[str] | None = None,
    ):
        self._client = client
        self._on_progress = on_progress
        self._excluded = excluded_tables or set()

    def _progress(self, step: str, detail: str | None = None) -> None:
        logger.debug("Introspection step: %s %s", step, detail or "")
        if self._on_progress:
            self._on_progress(step, detail)

    async def _fetch(self, sql: str, params: list | None = None) -> list[dict]:
        result = await self._client.query(sql, params)
        return result.rows

    async def introspect(
        self,
        include_functions: bool = False,
        include_triggers: bool = False,
        include_views: bool = False,
    ) -> DatabaseSchema:
        """Introspect the main database.

        SQLite has no stored functions; *include_functions* is accepted for
        a uniform signature and ignored.
        """
        schema = DatabaseSchema()

        self._progress("fetching_tables")
        rows = await self._fetch("""
            SELECT name, sql
            FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            ORDER BY name
        """)
        rows = [r for r in rows if r["name"] not in self._excluded]

        for position, row in enumerate(rows, 1):
            name = row["name"]
            self._progress("parsing_table", f"{name} ({position}/{len(rows)})")
            schema.tables.append(await self._get_table(name, row["sql"] or ""))

        if include_triggers:
            self._progress("fetching_triggers")
            triggers = await self._fetch("""
                SELECT name, tbl_name, sql
                FROM sqlite_master
                WHERE type = 'trigger'
                ORDER BY name
            """)
            schema.triggers = [parse_trigger(t["name"], t["tbl_name"], t["sql"] or "") for t in triggers]

        if include_views:
            self._progress("fetching_views")
            views = await self._fetch("""
                SELECT name, sql
                FROM sqlite_master
                WHERE type = 'view'
                ORDER BY name
            """)
            for view in views:
                match = _VIEW_RE.match(view["sql"] or "")
                definition = match.group(1).strip().rstrip(";") if match else view["sql"] or ""
                schema.views.append(View(name=view["name"], definition=definition))

        self._progress("done")
        return schema

    async def _get_table(self, name: str, table_sql: str) -> Table:
        rows = await self._fetch("SELECT * FROM pragma_table_xinfo(?) ORDER BY cid", [name])
        autoincrement = "AUTOINCREMENT" in table_sql.upper()
        pk_columns = sorted((r for r in rows if r["pk"]), key=lambda r: r["pk"])

        columns = []
        for ordinal, r in enumerate(rows, 1):
            parsed = canonical_type(r["type"])
            data_type = parsed.name
            if (
                autoincrement
                and len(pk_columns) == 1
                and r["pk"]
                and parsed.name == "integer"
            ):
                data_type = "serial"
            generated = None
            if r.get("hidden") in (2, 3):
                generated = GeneratedColumn(
                    expression=_generated_expression(table_sql, r["name"]),
                    stored=r["hidden"] == 3,
                )
            columns.append(Column(
                name=r["name"],
                ordinal=ordinal,
                data_type=data_type,
                length=parsed.length,
                precision=parsed.precision,
                scale=parsed.scale,
                is_nullable=not r["notnull"] and not r["pk"],
                default=r["dflt_value"] if data_type != "serial" else None,
                generated=generated,
            ))

        constraints: list[Constraint] = []
        if pk_columns:
            constraints.append(Constraint(
                name=f"{name}_pkey",
                constraint_type="PRIMARY_KEY",
                columns=[r["name"] for r in pk_columns],
            ))
        constraints.extend(_check_constraints(name, table_sql))
        indexes, uniques = await self._get_indexes(name)
        constraints.extend(uniques)
        constraints.extend(await self._get_foreign_keys(name))

        return Table(name=name, columns=columns, constraints=constraints, indexes=indexes)

    async def _get_indexes(self, table_name: str) -> tuple[list[Index], list[Constraint]]:
        """Get indexes and the UNIQUE constraints SQLite backs with autoindexes."""
        rows = await self._fetch("SELECT * FROM pragma_index_list(?) ORDER BY name", [table_name])
        indexes: list[Index] = []
        uniques: list[Constraint] = []
        for r in rows:
            if r["origin"] == "pk":
                continue
            info = await self._fetch("SELECT * FROM pragma_index_info(?) ORDER BY seqno", [r["name"]])
            columns = [c["name"] for c in info if c["name"] is not None]
            if r["origin"] == "u":
                uniques.append(Constraint(
                    name=f"{table_name}_{'_'.join(columns)}_key",
                    constraint_type="UNIQUE",
                    columns=columns,
                ))
                continue
            where = None
            expression = None
            sql_rows = await self._fetch(
                "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = ?", [r["name"]]
            )
            index_sql = (sql_rows[0]["sql"] if sql_rows else None) or ""
            if r.get("partial"):
                match = _INDEX_WHERE_RE.search(index_sql)
                where = match.group(1).strip().rstrip(";") if match else None
            if len(columns) < len(info) and "(" in index_sql:
                expression = _parenthesized(index_sql, index_sql.index("("))
                columns = []
            indexes.append(Index(
                name=r["name"],
                columns=columns,
                is_unique=bool(r["unique"]),
                where=where,
                expression=expression,
            ))
        return indexes, uniques

    async def _get_foreign_keys(self, table_name: str) -> list[Constraint]:
        rows = await self._fetch(
            "SELECT * FROM pragma_foreign_key_list(?) ORDER BY id, seq", [table_name]
        )
        by_id: dict[int, Constraint] = {}
        for r in rows:
            con = by_id.get(r["id"])
            if con is None:
                con = Constraint(
                    name="",
                    constraint_type="FOREIGN_KEY",
                    references_table=r["table"],
                    on_delete=r["on_delete"],
                    on_update=r["on_update"],
                )
                by_id[r["id"]] = con
            con.columns.append(r["from"])
            if r["to"] is not None:
                con.references_columns.append(r["to"])

        foreign_keys = []
        for con in by_id.values():
            if not con.references_columns:
                # REFERENCES parent with no column list targets the parent's key
                parent = await self._fetch(
                    "SELECT name FROM pragma_table_info(?) WHERE pk > 0 ORDER BY pk",
                    [con.references_table],
                )
                con.references_columns = [p["name"] for p in parent]
            con.name = f"{table_name}_{'_'.join(con.columns)}_fkey"
            foreign_keys.append(con)
        return foreign_keys
