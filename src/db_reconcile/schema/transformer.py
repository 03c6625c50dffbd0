"""Best-effort rewrites of PostgreSQL DDL for other dialects.

The DDL generator already spells types per dialect, so the transformer is
a safety net for hand-written migration files and authored SQL: it maps
PostgreSQL type names, casts and functions onto their MySQL or SQLite
equivalents and comments out statements the target cannot run at all.

Off by default; ``push --transform`` and ``migrate --transform`` turn it on.

Usage:
    from db_reconcile.dialects import get_dialect
    from db_reconcile.schema.transformer import transform_sql

    result = transform_sql("CREATE TABLE t (id SERIAL PRIMARY KEY);", get_dialect("sqlite"))
    result.sql         # 'CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT);'
    result.transforms  # ['SERIAL PRIMARY KEY -> INTEGER PRIMARY KEY AUTOINCREMENT']
"""

import logging
import re
from dataclasses import dataclass

from pydantic import BaseModel, Field

from db_reconcile.dialects import Dialect
from db_reconcile.migrations import split_statements
from db_reconcile.schema.validator import type_regex

logger = logging.getLogger(__name__)

_FLAGS = re.IGNORECASE | re.MULTILINE


class TransformResult(BaseModel):
    """Rewritten SQL plus what was changed and what was dropped."""

    sql: str
    transforms: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class Rewrite:
    """One table-driven replacement."""

    label: str
    regex: re.Pattern
    replacement: str


def _rewrite(label: str, regex: str, replacement: str) -> Rewrite:
    return Rewrite(label, re.compile(regex, _FLAGS), replacement)


def _type_rewrite(label: str, alternatives: str, replacement: str) -> Rewrite:
    return Rewrite(label, type_regex(alternatives), replacement)


_STRIP_CASTS = _rewrite(
    "::type casts removed",
    r"::\s*[a-z_]\w*(?:\s+varying|\s+precision|\s+with(?:out)?\s+time\s+zone)?(?:\[\])?",
    "",
)

PG_TO_MYSQL: tuple[Rewrite, ...] = (
    _rewrite("SERIAL PRIMARY KEY -> INT AUTO_INCREMENT PRIMARY KEY",
             r"\bSERIAL\s+PRIMARY\s+KEY\b", "INT AUTO_INCREMENT PRIMARY KEY"),
    _type_rewrite("BIGSERIAL -> BIGINT AUTO_INCREMENT", r"BIGSERIAL|SERIAL8", "BIGINT AUTO_INCREMENT"),
    _type_rewrite("SMALLSERIAL -> SMALLINT AUTO_INCREMENT", r"SMALLSERIAL|SERIAL2",
                  "SMALLINT AUTO_INCREMENT"),
    _type_rewrite("SERIAL -> INT AUTO_INCREMENT", r"SERIAL|SERIAL4", "INT AUTO_INCREMENT"),
    _type_rewrite("BOOLEAN -> TINYINT(1)", r"BOOLEAN|BOOL", "TINYINT(1)"),
    _type_rewrite("BYTEA -> BLOB", r"BYTEA", "BLOB"),
    _type_rewrite("TIMESTAMPTZ -> TIMESTAMP", r"TIMESTAMP\s+WITH\s+TIME\s+ZONE|TIMESTAMPTZ",
                  "TIMESTAMP"),
    _type_rewrite("UUID -> CHAR(36)", r"UUID", "CHAR(36)"),
    _type_rewrite("JSONB -> JSON", r"JSONB", "JSON"),
    _type_rewrite("DOUBLE PRECISION -> DOUBLE", r"DOUBLE\s+PRECISION", "DOUBLE"),
    _rewrite("gen_random_uuid() -> UUID()", r"\bgen_random_uuid\s*\(\s*\)", "(UUID())"),
    _STRIP_CASTS,
    _rewrite('"identifier" -> `identifier`', r'"([^"\n]+)"', r"`\1`"),
)

PG_TO_SQLITE: tuple[Rewrite, ...] = (
    _rewrite("SERIAL PRIMARY KEY -> INTEGER PRIMARY KEY AUTOINCREMENT",
             r"\b(?:BIG|SMALL)?SERIAL\s+PRIMARY\s+KEY\b", "INTEGER PRIMARY KEY AUTOINCREMENT"),
    _type_rewrite("SERIAL -> INTEGER", r"BIGSERIAL|SMALLSERIAL|SERIAL[248]?", "INTEGER"),
    _type_rewrite("BOOLEAN -> INTEGER", r"BOOLEAN|BOOL", "INTEGER"),
    _type_rewrite("BYTEA -> BLOB", r"BYTEA", "BLOB"),
    _type_rewrite(
        "date/time types -> TEXT",
        r"TIMESTAMP\s+WITH(?:OUT)?\s+TIME\s+ZONE|TIMESTAMPTZ|TIMESTAMP"
        r"|TIME\s+WITH(?:OUT)?\s+TIME\s+ZONE|TIMETZ|TIME|DATE|INTERVAL",
        "TEXT",
    ),
    _type_rewrite("UUID -> TEXT", r"UUID", "TEXT"),
    _type_rewrite("VARCHAR(n) -> TEXT",
                  r"(?:CHARACTER\s+VARYING|VARCHAR|CHARACTER|CHAR)(?:\s*\(\s*\d+\s*\))?", "TEXT"),
    _type_rewrite("NUMERIC(p,s) -> REAL",
                  r"(?:NUMERIC|DECIMAL)(?:\s*\(\s*\d+\s*(?:,\s*\d+\s*)?\))?", "REAL"),
    _type_rewrite("DOUBLE PRECISION -> REAL", r"DOUBLE\s+PRECISION|FLOAT[48]?", "REAL"),
    _type_rewrite("JSONB -> TEXT", r"JSONB|JSON", "TEXT"),
    _rewrite("NOW() -> CURRENT_TIMESTAMP", r"\bNOW\s*\(\s*\)", "CURRENT_TIMESTAMP"),
    _rewrite("gen_random_uuid() -> lower(hex(randomblob(16)))",
             r"\bgen_random_uuid\s*\(\s*\)", "(lower(hex(randomblob(16))))"),
    _STRIP_CASTS,
)

# Statements that are dropped (commented out) instead of rewritten
_SKIP_RULES: dict[str, tuple[tuple[str, re.Pattern], ...]] = {
    "mysql": (
        ("CREATE EXTENSION", re.compile(r"^\s*CREATE\s+EXTENSION\b", _FLAGS)),
        ("DROP EXTENSION", re.compile(r"^\s*DROP\s+EXTENSION\b", _FLAGS)),
        ("COMMENT ON", re.compile(r"^\s*COMMENT\s+ON\b", _FLAGS)),
    ),
    "sqlite": (
        ("CREATE EXTENSION", re.compile(r"^\s*CREATE\s+EXTENSION\b", _FLAGS)),
        ("DROP EXTENSION", re.compile(r"^\s*DROP\s+EXTENSION\b", _FLAGS)),
        ("COMMENT ON", re.compile(r"^\s*COMMENT\s+ON\b", _FLAGS)),
    ),
    "nile": (
        ("CREATE EXTENSION", re.compile(r"^\s*CREATE\s+EXTENSION\b", _FLAGS)),
    ),
}


def _rules_for(dialect: Dialect) -> tuple[tuple[Rewrite, ...], tuple[tuple[str, re.Pattern], ...]]:
    if dialect.name == "nile":
        return (), _SKIP_RULES["nile"]
    if dialect.family == "mysql":
        return PG_TO_MYSQL, _SKIP_RULES["mysql"]
    if dialect.family == "sqlite":
        return PG_TO_SQLITE, _SKIP_RULES["sqlite"]
    return (), ()


def transform_statement(statement: str, dialect: Dialect) -> TransformResult:
    """Rewrite one statement for *dialect*.

    A statement matching a skip rule comes back as a ``--`` comment and is
    listed in ``skipped``.

    Example:
        >>> from db_reconcile.dialects import get_dialect
        >>> transform_statement('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";',
        ...                     get_dialect("nile")).skipped
        ['CREATE EXTENSION IF NOT EXISTS "uuid-ossp";']
    """
    rewrites, skips = _rules_for(dialect)
    for label, pattern in skips:
        if pattern.search(statement):
            logger.debug("Skipping %s for %s", label, dialect.name)
            commented = "\n".join(
                f"-- Skipped for {dialect.display_name}: {line}"
                for line in statement.splitlines()
            )
            return TransformResult(sql=commented, skipped=[statement])

    applied: list[str] = []
    sql = statement
    for rewrite in rewrites:
        sql, count = rewrite.regex.subn(rewrite.replacement, sql)
        if count:
            applied.append(rewrite.label)
    return TransformResult(sql=sql, transforms=applied)


def transform_sql(sql: str, dialect: Dialect) -> TransformResult:
    """Rewrite every statement of *sql* for *dialect*.

    Dialects without rewrites get the statements back unchanged.
    """
    transforms: list[str] = []
    skipped: list[str] = []
    out: list[str] = []
    for statement in split_statements(sql):
        result = transform_statement(statement, dialect)
        out.append(result.sql)
        skipped.extend(result.skipped)
        transforms.extend(t for t in result.transforms if t not in transforms)
    return TransformResult(sql="\n".join(out), transforms=transforms, skipped=skipped)
