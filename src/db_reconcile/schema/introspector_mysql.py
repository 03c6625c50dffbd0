"""MySQL-family schema introspection via information_schema.

Reads MySQL, MariaDB and PlanetScale databases through a ``DatabaseClient``
and maps native column types back onto the canonical spellings
(``TINYINT(1)`` -> ``boolean``, ``INT AUTO_INCREMENT`` -> ``serial``).

MySQL has no standalone enum types; an ``ENUM(...)`` column becomes an
``EnumType`` named ``<table>_<column>``.

Usage:
    introspector = MySQLIntrospector(client)
    schema = await introspector.introspect(include_views=True)
"""

import logging
import re

from sqlalchemy.exc import DBAPIError

from db_reconcile.adapters.base import DatabaseClient
from db_reconcile.schema.introspector import ProgressCallback
from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    EnumType,
    Function,
    FunctionArg,
    GeneratedColumn,
    Index,
    Table,
    Trigger,
    View,
)
from db_reconcile.schema.types import ParsedType, SERIAL_TYPES, canonicalize_type

logger = logging.getLogger(__name__)

NATIVE_TYPES: dict[str, str] = {
    "tinyint": "smallint",
    "smallint": "smallint",
    "mediumint": "integer",
    "int": "integer",
    "integer": "integer",
    "bigint": "bigint",
    "year": "smallint",
    "float": "real",
    "double": "double precision",
    "real": "double precision",
    "decimal": "numeric",
    "numeric": "numeric",
    "varchar": "character varying",
    "char": "character",
    "tinytext": "text",
    "text": "text",
    "mediumtext": "text",
    "longtext": "text",
    "set": "text",
    "binary": "bytea",
    "varbinary": "bytea",
    "tinyblob": "bytea",
    "blob": "bytea",
    "mediumblob": "bytea",
    "longblob": "bytea",
    "datetime": "timestamp",
    "timestamp": "timestamp",
    "date": "date",
    "time": "time",
    "json": "json",
    "bit": "bit",
}

_SERIAL_FOR = {base: serial for serial, base in SERIAL_TYPES.items()}

_NATIVE_RE = re.compile(r"^(?P<base>[a-z]+)\s*(?:\((?P<args>[^)]*)\))?")
_ENUM_VALUE_RE = re.compile(r"'((?:[^']|'')*)'")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def canonical_type(column_type: str, extra: str = "") -> ParsedType:
    """Map a MySQL ``COLUMN_TYPE`` spelling onto a canonical ``ParsedType``.

    Display widths (``int(11)``) and ``unsigned`` are dropped.

    Examples:
        >>> canonical_type("tinyint(1)").name
        'boolean'
        >>> canonical_type("int", extra="auto_increment").name
        'serial'
        >>> canonical_type("DECIMAL(10, 2)")
        ParsedType(name='numeric', length=None, precision=10, scale=2, is_array=False)
    """
    text = " ".join(column_type.strip().lower().split())
    auto = "auto_increment" in text or "auto_increment" in extra.lower()
    match = _NATIVE_RE.match(text)
    if not match:
        return canonicalize_type(text)
    base, args = match.group("base"), match.group("args")
    if base == "tinyint" and args is not None and args.strip() == "1":
        return ParsedType("boolean")
    name = NATIVE_TYPES.get(base)
    if name is None:
        return canonicalize_type(text.replace("auto_increment", "").strip())
    if auto and name in _SERIAL_FOR:
        return ParsedType(_SERIAL_FOR[name])

    params = [int(a) for a in (args or "").split(",") if a.strip().isdigit()]
    if name in ("character varying", "character", "bit") and params:
        return ParsedType(name, length=params[0])
    if name == "numeric" and params:
        return ParsedType(name, precision=params[0], scale=params[1] if len(params) > 1 else None)
    return ParsedType(name)


def enum_values(column_type: str) -> list[str]:
    """Values of an ``enum('a','b')`` column type, in declaration order."""
    return [v.replace("''", "'") for v in _ENUM_VALUE_RE.findall(column_type)]


def _default_expr(value: str | None, extra: str, parsed: ParsedType) -> str | None:
    """Render ``COLUMN_DEFAULT`` as a SQL expression."""
    if value is None or value.upper() == "NULL":
        return None
    if "DEFAULT_GENERATED" in extra.upper() or value.startswith("'"):
        return value
    if parsed.name == "boolean" and value in ("0", "1"):
        return "true" if value == "1" else "false"
    if _NUMBER_RE.match(value) and parsed.name != "text":
        return value
    if value.upper() in ("CURRENT_TIMESTAMP", "CURRENT_DATE", "CURRENT_TIME"):
        return value
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _strip_parens(expr: str) -> str:
    """Drop one pair of parentheses wrapping the whole expression."""
    expr = expr.strip()
    if not (expr.startswith("(") and expr.endswith(")")):
        return expr
    depth = 0
    for i, ch in enumerate(expr):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(expr) - 1:
                return expr
    return expr[1:-1].strip()


class MySQLIntrospector:
    """Introspects a MySQL-family database through a ``DatabaseClient``."""

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
        """Introspect the current database (``DATABASE()``)."""
        caps = self._client.dialect.capabilities
        schema = DatabaseSchema()

        self._progress("fetching_tables")
        rows = await self._fetch("""
            SELECT TABLE_NAME AS name, TABLE_COMMENT AS comment
            FROM information_schema.TABLES
            WHERE TABLE_SCHEMA = DATABASE() AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
        """)
        rows = [r for r in rows if r["name"] not in self._excluded]

        for position, row in enumerate(rows, 1):
            name = row["name"]
            self._progress("parsing_table", f"{name} ({position}/{len(rows)})")
            columns, enums = await self._get_columns(name)
            constraints = await self._get_constraints(name)
            indexes = await self._get_indexes(name, constraints)
            schema.enums.extend(enums)
            schema.tables.append(Table(
                name=name,
                columns=columns,
                constraints=constraints,
                indexes=indexes,
                comment=row["comment"] or None,
            ))
        schema.enums.sort(key=lambda e: e.name)

        if include_functions and caps.supports_stored_procedures:
            self._progress("fetching_functions")
            schema.functions = await self._get_functions()
        if include_triggers and caps.supports_triggers:
            self._progress("fetching_triggers")
            schema.triggers = await self._get_triggers()
        if include_views:
            self._progress("fetching_views")
            schema.views = await self._get_views()

        self._progress("done")
        return schema

    async def _get_columns(self, table_name: str) -> tuple[list[Column], list[EnumType]]:
        rows = await self._fetch("""
            SELECT COLUMN_NAME AS name,
                   ORDINAL_POSITION AS ordinal,
                   DATA_TYPE AS data_type,
                   COLUMN_TYPE AS column_type,
                   IS_NULLABLE AS nullable,
                   COLUMN_DEFAULT AS default_value,
                   EXTRA AS extra,
                   GENERATION_EXPRESSION AS generation_expression,
                   COLUMN_COMMENT AS comment
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ?
            ORDER BY ORDINAL_POSITION
        """, [table_name])

        columns: list[Column] = []
        enums: list[EnumType] = []
        for r in rows:
            extra = r["extra"] or ""
            if (r["data_type"] or "").lower() == "enum":
                enum = EnumType(name=f"{table_name}_{r['name']}", values=enum_values(r["column_type"]))
                enums.append(enum)
                parsed = ParsedType(enum.name)
            else:
                parsed = canonical_type(r["column_type"], extra)
            generated = None
            if "GENERATED" in extra.upper() and r["generation_expression"]:
                generated = GeneratedColumn(
                    expression=r["generation_expression"],
                    stored="STORED" in extra.upper(),
                )
            default = None
            if generated is None and parsed.name not in SERIAL_TYPES:
                default = _default_expr(r["default_value"], extra, parsed)
            columns.append(Column(
                name=r["name"],
                ordinal=r["ordinal"],
                data_type=parsed.name,
                length=parsed.length,
                precision=parsed.precision,
                scale=parsed.scale,
                is_nullable=r["nullable"] == "YES",
                default=default,
                generated=generated,
                comment=r["comment"] or None,
            ))
        return columns, enums

    async def _get_constraints(self, table_name: str) -> list[Constraint]:
        rows = await self._fetch("""
            SELECT tc.CONSTRAINT_NAME AS name,
                   tc.CONSTRAINT_TYPE AS type,
                   kcu.COLUMN_NAME AS column_name,
                   kcu.REFERENCED_TABLE_NAME AS referenced_table,
                   kcu.REFERENCED_COLUMN_NAME AS referenced_column,
                   rc.UPDATE_RULE AS on_update,
                   rc.DELETE_RULE AS on_delete
            FROM information_schema.TABLE_CONSTRAINTS tc
            LEFT JOIN information_schema.KEY_COLUMN_USAGE kcu
                ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
                AND tc.TABLE_NAME = kcu.TABLE_NAME
            LEFT JOIN information_schema.REFERENTIAL_CONSTRAINTS rc
                ON tc.CONSTRAINT_NAME = rc.CONSTRAINT_NAME
                AND tc.TABLE_SCHEMA = rc.CONSTRAINT_SCHEMA
                AND tc.TABLE_NAME = rc.TABLE_NAME
            WHERE tc.TABLE_SCHEMA = DATABASE() AND tc.TABLE_NAME = ?
            ORDER BY tc.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
        """, [table_name])

        kinds = {"PRIMARY KEY": "PRIMARY_KEY", "UNIQUE": "UNIQUE", "FOREIGN KEY": "FOREIGN_KEY"}
        by_name: dict[str, Constraint] = {}
        for r in rows:
            kind = kinds.get(r["type"])
            if kind is None:
                continue
            # MySQL names every primary key PRIMARY
            name = f"{table_name}_pkey" if kind == "PRIMARY_KEY" else r["name"]
            con = by_name.get(name)
            if con is None:
                is_fk = kind == "FOREIGN_KEY"
                con = Constraint(
                    name=name,
                    constraint_type=kind,
                    references_table=r["referenced_table"] if is_fk else None,
                    on_delete=r["on_delete"] if is_fk else None,
                    on_update=r["on_update"] if is_fk else None,
                )
                by_name[name] = con
            if r["column_name"]:
                con.columns.append(r["column_name"])
            if r["referenced_column"]:
                con.references_columns.append(r["referenced_column"])

        try:
            checks = await self._fetch("""
                SELECT cc.CONSTRAINT_NAME AS name, cc.CHECK_CLAUSE AS check_clause
                FROM information_schema.CHECK_CONSTRAINTS cc
                JOIN information_schema.TABLE_CONSTRAINTS tc
                    ON tc.CONSTRAINT_SCHEMA = cc.CONSTRAINT_SCHEMA
                    AND tc.CONSTRAINT_NAME = cc.CONSTRAINT_NAME
                WHERE cc.CONSTRAINT_SCHEMA = DATABASE()
                    AND tc.TABLE_NAME = ?
                    AND tc.CONSTRAINT_TYPE = 'CHECK'
                ORDER BY cc.CONSTRAINT_NAME
            """, [table_name])
        except DBAPIError as e:
            # CHECK_CONSTRAINTS exists from MySQL 8.0.16 / MariaDB 10.2
            logger.warning("Skipping check constraints on %s: %s", table_name, e)
            checks = []
        for r in checks:
            by_name[r["name"]] = Constraint(
                name=r["name"],
                constraint_type="CHECK",
                check_expr=_strip_parens(r["check_clause"] or ""),
            )

        return list(by_name.values())

    async def _get_indexes(self, table_name: str, constraints: list[Constraint]) -> list[Index]:
        """Get secondary indexes, skipping those MySQL creates for keys."""
        rows = await self._fetch("""
            SELECT INDEX_NAME AS name,
                   NON_UNIQUE AS non_unique,
                   INDEX_TYPE AS index_type,
                   COLUMN_NAME AS column_name,
                   INDEX_COMMENT AS comment
            FROM information_schema.STATISTICS
            WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = ?
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """, [table_name])

        backing = {"PRIMARY"} | {
            c.name for c in constraints if c.constraint_type in ("UNIQUE", "FOREIGN_KEY")
        }
        indexes: dict[str, Index] = {}
        for r in rows:
            if r["name"] in backing:
                continue
            index = indexes.get(r["name"])
            if index is None:
                method = (r["index_type"] or "BTREE").lower()
                index = Index(
                    name=r["name"],
                    is_unique=int(r["non_unique"]) == 0,
                    method=method,
                    comment=r["comment"] or None,
                )
                indexes[r["name"]] = index
            if r["column_name"]:
                index.columns.append(r["column_name"])
        return list(indexes.values())

    async def _get_functions(self) -> list[Function]:
        rows = await self._fetch("""
            SELECT ROUTINE_NAME AS name,
                   ROUTINE_TYPE AS routine_type,
                   DTD_IDENTIFIER AS return_type,
                   ROUTINE_DEFINITION AS definition,
                   IS_DETERMINISTIC AS is_deterministic,
                   SECURITY_TYPE AS security_type
            FROM information_schema.ROUTINES
            WHERE ROUTINE_SCHEMA = DATABASE()
            ORDER BY ROUTINE_NAME
        """)
        params = await self._fetch("""
            SELECT SPECIFIC_NAME AS routine,
                   PARAMETER_NAME AS name,
                   PARAMETER_MODE AS mode,
                   DTD_IDENTIFIER AS data_type
            FROM information_schema.PARAMETERS
            WHERE SPECIFIC_SCHEMA = DATABASE() AND ORDINAL_POSITION > 0
            ORDER BY SPECIFIC_NAME, ORDINAL_POSITION
        """)
        args: dict[str, list[FunctionArg]] = {}
        for p in params:
            args.setdefault(p["routine"], []).append(FunctionArg(
                name=p["name"],
                data_type=p["data_type"],
                mode=p["mode"] or "IN",
            ))
        return [
            Function(
                name=r["name"],
                kind="procedure" if r["routine_type"] == "PROCEDURE" else "function",
                args=args.get(r["name"], []),
                return_type=r["return_type"] if r["routine_type"] == "FUNCTION" else None,
                language="sql",
                body=(r["definition"] or "").strip(),
                volatility="IMMUTABLE" if r["is_deterministic"] == "YES" else "VOLATILE",
                security_definer=r["security_type"] == "DEFINER",
            )
            for r in rows
        ]

    async def _get_triggers(self) -> list[Trigger]:
        rows = await self._fetch("""
            SELECT TRIGGER_NAME AS name,
                   EVENT_OBJECT_TABLE AS table_name,
                   ACTION_TIMING AS timing,
                   EVENT_MANIPULATION AS event,
                   ACTION_ORIENTATION AS orientation
            FROM information_schema.TRIGGERS
            WHERE TRIGGER_SCHEMA = DATABASE()
            ORDER BY EVENT_OBJECT_TABLE, TRIGGER_NAME
        """)
        # MySQL trigger bodies are inline; the trigger names itself as its function
        return [
            Trigger(
                name=r["name"],
                table=r["table_name"],
                events=[r["event"]],
                timing=r["timing"],
                for_each="ROW" if r["orientation"] == "ROW" else "STATEMENT",
                function_name=r["name"],
            )
            for r in rows
        ]

    async def _get_views(self) -> list[View]:
        rows = await self._fetch("""
            SELECT TABLE_NAME AS name, VIEW_DEFINITION AS definition
            FROM information_schema.VIEWS
            WHERE TABLE_SCHEMA = DATABASE()
            ORDER BY TABLE_NAME
        """)
        return [View(name=r["name"], definition=(r["definition"] or "").strip()) for r in rows]
