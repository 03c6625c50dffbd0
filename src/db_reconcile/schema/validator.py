"""Dialect validator -- check candidate DDL and schemas against a dialect.

Two layers of checks:

1. **Pattern checks** over SQL text: each dialect has a registry of
   forbidden patterns (a regex, a category and a suggested alternative).
   Every pattern reports at most once per validated text.
2. **Schema checks** over a ``DatabaseSchema``: blocked column types,
   capability flags, Nile tenant rules and PlanetScale's missing foreign
   keys.

Stricter variants extend their base registry (PlanetScale extends MySQL,
Turso equals SQLite), so a statement rejected by the base dialect is also
rejected by every variant.

Usage:
    from db_reconcile.dialects import get_dialect
    from db_reconcile.schema.validator import validate_statements

    result = validate_statements(migration.up, get_dialect("sqlite"))
    if not result.valid:
        for error in result.errors:
            print(error.feature, error.alternative)
"""

import re
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, Field

from db_reconcile.dialects import Dialect
from db_reconcile.errors import DialectIncompatibilityError
from db_reconcile.schema.models import DatabaseSchema, Table
from db_reconcile.schema.types import canonicalize_type


Category = Literal[
    "DATA_TYPE",
    "DDL",
    "INDEX",
    "FUNCTION",
    "CONSTRAINT",
    "TRIGGER",
    "SYNTAX",
    "TENANT",
    "EXTENSION",
]

_FLAGS = re.IGNORECASE | re.MULTILINE

DOCS_URLS: dict[str, str] = {
    "cockroachdb": "https://www.cockroachlabs.com/docs/stable/postgresql-compatibility",
    "nile": "https://www.thenile.dev/docs/postgres/postgres-compatibility",
    "dsql": "https://docs.aws.amazon.com/aurora-dsql/latest/userguide/working-with-postgresql-compatibility.html",
    "mysql": "https://dev.mysql.com/doc/refman/8.0/en/",
    "mariadb": "https://mariadb.com/kb/en/sql-statements/",
    "planetscale": "https://planetscale.com/docs/reference/mysql-compatibility",
    "sqlite": "https://sqlite.org/lang.html",
    "turso": "https://docs.turso.tech/sql-reference",
}

NILE_BUILTIN_TABLES = frozenset({"tenants", "users", "tenant_users"})
NILE_PREINSTALLED_EXTENSIONS = frozenset({
    "pgvector", "vector", "postgis", "uuid-ossp", "pg_trgm", "btree_gist", "btree_gin",
})


# ------------------------------------------------------------------
# Result models
# ------------------------------------------------------------------


class CompatibilityIssue(BaseModel):
    """One incompatibility (error) or caveat (warning) found by the validator."""

    category: Category
    feature: str
    detected: str
    location: str | None = None
    message: str
    alternative: str | None = None
    docs_url: str | None = None

    def describe(self) -> str:
        where = f" at {self.location}" if self.location else ""
        text = f"[{self.category}] {self.feature}{where}: {self.message}"
        if self.alternative:
            text += f" ({self.alternative})"
        return text


class DialectValidationResult(BaseModel):
    """Outcome of validating SQL or a schema against one dialect.

    Example:
        >>> from db_reconcile.dialects import get_dialect
        >>> result = validate_sql("CREATE SEQUENCE order_seq;", get_dialect("sqlite"))
        >>> result.valid, [e.feature for e in result.errors]
        (False, ['CREATE_SEQUENCE'])
    """

    dialect: str
    valid: bool = True
    errors: list[CompatibilityIssue] = Field(default_factory=list)
    warnings: list[CompatibilityIssue] = Field(default_factory=list)
    transformed_sql: str | None = None
    can_transform: bool = False
    transforms: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)

    def add(self, issue: CompatibilityIssue, is_warning: bool = False) -> None:
        if is_warning:
            self.warnings.append(issue)
        else:
            self.errors.append(issue)
            self.valid = False

    def merge(self, other: "DialectValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.transforms.extend(t for t in other.transforms if t not in self.transforms)
        self.skipped.extend(other.skipped)
        self.valid = self.valid and other.valid

    def raise_for_errors(self) -> None:
        """Raise ``DialectIncompatibilityError`` when any error was found."""
        if self.errors:
            raise DialectIncompatibilityError(self)


# ------------------------------------------------------------------
# Pattern registry
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ForbiddenPattern:
    """A regex that marks a statement as unsupported on a dialect."""

    feature: str
    category: Category
    regex: re.Pattern
    message: str
    alternative: str | None = None
    is_warning: bool = False


# A type name is only a type when it follows whitespace or a ``::`` cast,
# is not the name of a table, index, column or referenced table, and is
# followed by something that can end a type.
_TYPE_PRECEDE = (
    r"(?:(?<=::)|(?<=\s))"
    r"(?<!\bTABLE\s)(?<!\bINDEX\s)(?<!\bON\s)(?<!\bEXISTS\s)(?<!\bVIEW\s)"
    r"(?<!\bCOLUMN\s)(?<!\bTO\s)(?<!\bREFERENCES\s)(?<!,\s)"
)
_TYPE_FOLLOW = (
    r"(?=\s*(?:[(\[,);]|$|NOT\b|NULL\b|DEFAULT\b|PRIMARY\b|UNIQUE\b|REFERENCES\b"
    r"|CHECK\b|CONSTRAINT\b|COLLATE\b|GENERATED\b|USING\b|ARRAY\b))"
)


def type_regex(alternatives: str) -> re.Pattern:
    """Compile a case-insensitive regex matching type names in type position."""
    return re.compile(rf"{_TYPE_PRECEDE}(?:{alternatives})(?!\w){_TYPE_FOLLOW}", _FLAGS)


def _type(feature: str, alternatives: str, message: str, alternative: str) -> ForbiddenPattern:
    return ForbiddenPattern(
        feature=feature,
        category="DATA_TYPE",
        regex=type_regex(alternatives),
        message=message,
        alternative=alternative,
    )


def _sql(
    feature: str,
    category: Category,
    regex: str,
    message: str,
    alternative: str | None = None,
    is_warning: bool = False,
) -> ForbiddenPattern:
    return ForbiddenPattern(
        feature=feature,
        category=category,
        regex=re.compile(regex, _FLAGS),
        message=message,
        alternative=alternative,
        is_warning=is_warning,
    )


_GEOMETRIC = r"POINT|LINE|LSEG|BOX|PATH|POLYGON|CIRCLE"
_RANGES = r"INT4RANGE|INT8RANGE|NUMRANGE|TSRANGE|TSTZRANGE|DATERANGE"
_OBJECT_IDS = r"OID|REGPROC|REGPROCEDURE|REGOPER|REGOPERATOR|REGCLASS|REGTYPE"

_LISTEN = _sql(
    "LISTEN", "SYNTAX", r"^\s*LISTEN\s+\w+",
    "LISTEN/NOTIFY is not supported", "Use polling or an external message queue",
)
_NOTIFY = _sql(
    "NOTIFY", "SYNTAX", r"^\s*NOTIFY\s+\w+|\bpg_notify\s*\(",
    "LISTEN/NOTIFY is not supported", "Use polling or an external message queue",
)
_DO_BLOCK = _sql(
    "DO_BLOCK", "FUNCTION", r"^\s*DO\s+(?:LANGUAGE\s+\w+\s+)?\$",
    "Anonymous DO blocks are not supported", "Run the statements individually",
)
_PLPGSQL = _sql(
    "PLPGSQL", "FUNCTION", r"\bLANGUAGE\s+'?plpgsql'?",
    "PL/pgSQL is not supported", "Move the logic into application code",
)
_EXCLUSION = _sql(
    "EXCLUSION", "CONSTRAINT", r"\bEXCLUDE\s+(?:USING\s+\w+\s*)?\(",
    "Exclusion constraints are not supported", "Enforce the rule in application code",
)


def _index_method(feature: str, method: str, alternative: str) -> ForbiddenPattern:
    return _sql(
        feature, "INDEX", rf"\bUSING\s+{method}\b",
        f"{method.upper()} indexes are not supported", alternative,
    )


POSTGRES_PATTERNS: tuple[ForbiddenPattern, ...] = ()

COCKROACHDB_PATTERNS: tuple[ForbiddenPattern, ...] = (
    _type("MONEY", r"MONEY", "MONEY type is not supported", "Use DECIMAL(19,4)"),
    _type("XML", r"XML", "XML type is not supported", "Use TEXT or JSONB"),
    _type("GEOMETRIC", _GEOMETRIC, "Geometric types are not supported",
          "Use GEOMETRY with spatial indexes"),
    _type("RANGE", _RANGES, "Range types are not supported",
          "Use separate lower/upper bound columns"),
    _type("TSQUERY", r"TSQUERY", "TSQUERY type is not supported",
          "Use inverted indexes on STRING columns"),
    _type("OBJECT_ID", _OBJECT_IDS, "Object identifier types are not supported",
          "Use INT8 or STRING"),
    _type("CIDR", r"CIDR", "CIDR type is not supported", "Use INET"),
    _type("MACADDR", r"MACADDR8?", "MACADDR type is not supported", "Use STRING"),
    _sql("CREATE_TRIGGER", "TRIGGER", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?TRIGGER\b",
         "Trigger support is limited", "Verify the trigger on CockroachDB 24.3+",
         is_warning=True),
    _sql("CREATE_DOMAIN", "DDL", r"\bCREATE\s+DOMAIN\b",
         "Domains are not supported", "Use CHECK constraints on the columns"),
    _sql("CREATE_TYPE_AS", "DDL", r"\bCREATE\s+TYPE\s+\S+\s+AS\s*\(",
         "Composite types are not supported", "Use JSONB or separate columns"),
    _EXCLUSION,
    _sql("DEFERRABLE", "CONSTRAINT", r"\bDEFERRABLE\b",
         "Deferrable constraints are not supported", "Order writes so constraints hold"),
    _sql("PLPGSQL_TYPE", "FUNCTION", r"\w%(?:ROW)?TYPE\b",
         "%TYPE and %ROWTYPE are not supported", "Declare explicit types"),
    _LISTEN,
    _NOTIFY,
    _sql("ADVISORY_LOCK", "FUNCTION", r"\bpg_(?:try_)?advisory_(?:xact_)?lock\w*\s*\(",
         "Advisory locks are not supported", "Use SELECT ... FOR UPDATE"),
    _index_method("SPGIST_INDEX", "spgist", "Use a btree or inverted index"),
    _index_method("BRIN_INDEX", "brin", "Use a btree index"),
    _sql("TABLESPACE", "DDL", r"\bTABLESPACE\b",
         "Tablespaces are ignored", "Use zone configurations", is_warning=True),
)

NILE_PATTERNS: tuple[ForbiddenPattern, ...] = (
    _sql("CREATE_FUNCTION", "FUNCTION", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?FUNCTION\b",
         "User-defined functions are not supported", "Move the logic into application code"),
    _sql("CREATE_PROCEDURE", "FUNCTION", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?PROCEDURE\b",
         "Stored procedures are not supported", "Move the logic into application code"),
    _sql("CREATE_TRIGGER", "TRIGGER", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?TRIGGER\b",
         "Triggers are not supported", "Move the logic into application code"),
    _PLPGSQL,
    _DO_BLOCK,
    _sql("CREATE_POLICY", "DDL", r"\bCREATE\s+POLICY\b",
         "Row level security policies are managed by Nile", "Use tenant isolation"),
    _sql("CREATE_ROLE", "DDL", r"\bCREATE\s+(?:ROLE|USER)\b",
         "Roles and users are managed by Nile", "Use the Nile console"),
    _sql("CREATE_DATABASE", "DDL", r"\bCREATE\s+DATABASE\b",
         "Databases are managed by Nile", "Use the Nile console"),
    _sql("CREATE_EXTENSION", "EXTENSION", r"\bCREATE\s+EXTENSION\b",
         "Extensions are pre-installed", "Remove the CREATE EXTENSION statement",
         is_warning=True),
    _LISTEN,
    _NOTIFY,
)

DSQL_PATTERNS: tuple[ForbiddenPattern, ...] = (
    _type("SERIAL", r"SERIAL|BIGSERIAL|SMALLSERIAL|SERIAL4|SERIAL8|SERIAL2",
          "Serial types are not supported",
          "Use UUID DEFAULT gen_random_uuid() or application-generated ids"),
    _type("JSON", r"JSONB?", "JSON types are not supported as column types",
          "Use TEXT and parse in the application"),
    _type("XML", r"XML", "XML type is not supported", "Use TEXT"),
    _type("GEOMETRIC", _GEOMETRIC, "Geometric types are not supported", "Use numeric columns"),
    _type("RANGE", _RANGES, "Range types are not supported",
          "Use separate lower/upper bound columns"),
    _type("BIT", r"BIT\s+VARYING|VARBIT|BIT", "Bit string types are not supported",
          "Use BYTEA or INTEGER"),
    _type("NETWORK", r"INET|CIDR|MACADDR8?", "Network address types are not supported",
          "Use TEXT"),
    _type("MONEY", r"MONEY", "MONEY type is not supported", "Use NUMERIC(19,4)"),
    _type("OBJECT_ID", _OBJECT_IDS, "Object identifier types are not supported", "Use TEXT"),
    _type("TEXT_SEARCH", r"TSVECTOR|TSQUERY", "Full text search types are not supported",
          "Use an external search service"),
    _sql("ARRAY", "DATA_TYPE", r"\w\[\s*\]", "Array columns are not supported",
         "Use TEXT holding a serialized list"),
    _sql("CREATE_TRIGGER", "TRIGGER", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?TRIGGER\b",
         "Triggers are not supported", "Move the logic into application code"),
    _PLPGSQL,
    _DO_BLOCK,
    _sql("CREATE_SEQUENCE", "DDL", r"\bCREATE\s+SEQUENCE\b",
         "Sequences are not supported", "Use UUID primary keys"),
    _sql("NEXTVAL", "FUNCTION", r"\bnextval\s*\(", "Sequences are not supported",
         "Use UUID primary keys"),
    _sql("IDENTITY", "DDL", r"\bGENERATED\s+(?:ALWAYS|BY\s+DEFAULT)\s+AS\s+IDENTITY\b",
         "Identity columns are not supported", "Use UUID primary keys"),
    _sql("FOREIGN_KEY", "CONSTRAINT", r"\bFOREIGN\s+KEY\b|\bREFERENCES\s+\S+",
         "Foreign keys are not enforced", "Enforce referential integrity in the application"),
    _sql("TRUNCATE", "DDL", r"^\s*TRUNCATE\b", "TRUNCATE is not supported",
         "Use DELETE FROM"),
    _sql("TEMP_TABLE", "DDL", r"\bCREATE\s+(?:TEMP|TEMPORARY)\s+TABLE\b",
         "Temporary tables are not supported", "Use a regular table"),
    _sql("PARTITION_BY", "DDL", r"\bPARTITION\s+BY\b",
         "Table partitioning is not supported", "Use a single table"),
    _sql("CREATE_EXTENSION", "EXTENSION", r"\bCREATE\s+EXTENSION\b",
         "Extensions are not supported", "Remove the extension dependency"),
    _index_method("GIN_INDEX", "gin", "Use a btree index"),
    _index_method("GIST_INDEX", "gist", "Use a btree index"),
    _index_method("SPGIST_INDEX", "spgist", "Use a btree index"),
    _index_method("BRIN_INDEX", "brin", "Use a btree index"),
    _LISTEN,
    _NOTIFY,
)

_MYSQL_SEQUENCE = _sql(
    "CREATE_SEQUENCE", "DDL", r"\bCREATE\s+SEQUENCE\b",
    "Sequences are not supported", "Use AUTO_INCREMENT",
)

_MYSQL_COMMON: tuple[ForbiddenPattern, ...] = (
    _type("RANGE", _RANGES, "Range types are not supported",
          "Use separate lower/upper bound columns"),
    _type("TEXT_SEARCH", r"TSVECTOR|TSQUERY", "Full text search types are not supported",
          "Use a FULLTEXT index"),
    _type("GEOMETRIC_PG", r"LINE|LSEG|BOX|PATH|CIRCLE",
          "PostgreSQL geometric types are not supported", "Use GEOMETRY types"),
    _type("MONEY", r"MONEY", "MONEY type is not supported", "Use DECIMAL(19,4)"),
    _type("XML", r"XML", "XML type is not supported", "Use TEXT"),
    _type("OBJECT_ID", _OBJECT_IDS, "Object identifier types are not supported",
          "Use INT UNSIGNED"),
    _type("BIT_VARYING", r"BIT\s+VARYING|VARBIT", "Varying bit strings are not supported",
          "Use BIT(n) or VARBINARY"),
    _sql("ARRAY", "DATA_TYPE", r"\w\[\s*\]", "Array columns are not supported",
         "Use JSON arrays"),
    _sql("IDENTITY", "DDL", r"\bGENERATED\s+(?:ALWAYS|BY\s+DEFAULT)\s+AS\s+IDENTITY\b",
         "Identity columns are not supported", "Use AUTO_INCREMENT"),
    _sql("DOLLAR_QUOTE", "SYNTAX", r"\$\w*\$",
         "Dollar quoting is not supported", "Use DELIMITER and BEGIN ... END"),
    _PLPGSQL,
    _DO_BLOCK,
    _sql("CREATE_EXTENSION", "EXTENSION", r"\bCREATE\s+EXTENSION\b",
         "Extensions do not exist in MySQL", "Remove the CREATE EXTENSION statement"),
    _sql("CREATE_TYPE", "DDL", r"\bCREATE\s+TYPE\b",
         "User-defined types are not supported", "Use inline ENUM(...) or JSON columns"),
    _sql("CREATE_DOMAIN", "DDL", r"\bCREATE\s+DOMAIN\b",
         "Domains are not supported", "Use CHECK constraints on the columns"),
    _sql("MATERIALIZED_VIEW", "DDL", r"\bMATERIALIZED\s+VIEW\b",
         "Materialized views are not supported", "Use a table refreshed by a scheduled event"),
    _EXCLUSION,
    _sql("DEFERRABLE", "CONSTRAINT", r"\bDEFERRABLE\b",
         "Deferrable constraints are not supported", "Order writes so constraints hold"),
    _index_method("GIST_INDEX", "gist", "Use a SPATIAL index"),
    _index_method("GIN_INDEX", "gin", "Use a FULLTEXT index"),
    _index_method("SPGIST_INDEX", "spgist", "Use a btree index"),
    _index_method("BRIN_INDEX", "brin", "Use a btree index"),
    _sql("ADVISORY_LOCK", "FUNCTION", r"\bpg_(?:try_)?advisory_(?:xact_)?lock\w*\s*\(",
         "Advisory locks are not supported", "Use GET_LOCK()"),
    _sql("GEN_RANDOM_UUID", "FUNCTION", r"\bgen_random_uuid\s*\(",
         "gen_random_uuid() is not available", "Use UUID()"),
    _LISTEN,
    _NOTIFY,
)

MYSQL_PATTERNS = (_MYSQL_SEQUENCE, *_MYSQL_COMMON)
MARIADB_PATTERNS = _MYSQL_COMMON

PLANETSCALE_PATTERNS = (
    *MYSQL_PATTERNS,
    _sql("FOREIGN_KEY", "CONSTRAINT", r"\bFOREIGN\s+KEY\b",
         "Foreign key constraints are not supported by Vitess",
         "Enforce referential integrity in the application"),
    _sql("REFERENCES", "CONSTRAINT", r"\bREFERENCES\s+\S+",
         "Foreign key constraints are not supported by Vitess",
         "Enforce referential integrity in the application"),
    _sql("CREATE_TRIGGER", "TRIGGER", r"\bCREATE\s+TRIGGER\b",
         "Triggers are not supported", "Move the logic into application code"),
    _sql("CREATE_PROCEDURE", "FUNCTION", r"\bCREATE\s+(?:FUNCTION|PROCEDURE)\b",
         "Stored routines are not supported", "Move the logic into application code"),
)

SQLITE_PATTERNS: tuple[ForbiddenPattern, ...] = (
    _sql("ARRAY", "DATA_TYPE", r"\w\[\s*\]", "Array columns are not supported",
         "Use TEXT holding JSON"),
    _type("RANGE", _RANGES, "Range types are not supported",
          "Use separate lower/upper bound columns"),
    _type("TEXT_SEARCH", r"TSVECTOR|TSQUERY", "Full text search types are not supported",
          "Use an FTS5 virtual table"),
    _type("GEOMETRIC", _GEOMETRIC, "Geometric types are not supported",
          "Use separate numeric columns"),
    _type("NETWORK", r"INET|CIDR|MACADDR8?", "Network address types are not supported",
          "Use TEXT"),
    _type("MONEY", r"MONEY", "MONEY type is not supported", "Use INTEGER cents"),
    _type("XML", r"XML", "XML type is not supported", "Use TEXT"),
    _type("OBJECT_ID", _OBJECT_IDS, "Object identifier types are not supported",
          "Use INTEGER"),
    _type("BIT", r"BIT\s+VARYING|VARBIT|BIT", "Bit string types are not supported",
          "Use INTEGER or BLOB"),
    _sql("CREATE_SEQUENCE", "DDL", r"\bCREATE\s+SEQUENCE\b",
         "Sequences not supported - use AUTOINCREMENT",
         "Use INTEGER PRIMARY KEY AUTOINCREMENT"),
    _sql("IDENTITY", "DDL", r"\bGENERATED\s+(?:ALWAYS|BY\s+DEFAULT)\s+AS\s+IDENTITY\b",
         "Identity columns are not supported", "Use INTEGER PRIMARY KEY AUTOINCREMENT"),
    _sql("CREATE_FUNCTION", "FUNCTION", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?FUNCTION\b",
         "Stored functions are not supported", "Register application-defined functions"),
    _sql("CREATE_PROCEDURE", "FUNCTION", r"\bCREATE\s+(?:OR\s+REPLACE\s+)?PROCEDURE\b",
         "Stored procedures are not supported", "Move the logic into application code"),
    _PLPGSQL,
    _DO_BLOCK,
    _sql("DOLLAR_QUOTE", "SYNTAX", r"\$\w*\$",
         "Dollar quoting is not supported", "Use single-quoted strings"),
    _sql("CREATE_TYPE", "DDL", r"\bCREATE\s+TYPE\b",
         "User-defined types are not supported", "Use TEXT with a CHECK constraint"),
    _sql("CREATE_DOMAIN", "DDL", r"\bCREATE\s+DOMAIN\b",
         "Domains are not supported", "Use CHECK constraints on the columns"),
    _sql("MATERIALIZED_VIEW", "DDL", r"\bMATERIALIZED\s+VIEW\b",
         "Materialized views are not supported", "Use a regular view or a table"),
    _sql("ALTER_COLUMN", "DDL", r"\bALTER\s+TABLE\s+\S+\s+ALTER\s+COLUMN\b",
         "ALTER COLUMN is not supported", "Recreate the table with the new definition"),
    _sql("ADD_CONSTRAINT", "CONSTRAINT", r"\bALTER\s+TABLE\s+\S+\s+ADD\s+CONSTRAINT\b",
         "Constraints cannot be added to existing tables",
         "Recreate the table with the constraint"),
    _LISTEN,
    _NOTIFY,
    _EXCLUSION,
    _index_method("GIST_INDEX", "gist", "Use a btree index"),
    _index_method("GIN_INDEX", "gin", "Use an FTS5 virtual table"),
    _index_method("SPGIST_INDEX", "spgist", "Use a btree index"),
    _index_method("BRIN_INDEX", "brin", "Use a btree index"),
    _index_method("HASH_INDEX", "hash", "Use a btree index"),
    _sql("TRUNCATE", "DDL", r"^\s*TRUNCATE\b", "TRUNCATE is not supported",
         "Use DELETE FROM"),
    _sql("GEN_RANDOM_UUID", "FUNCTION", r"\bgen_random_uuid\s*\(",
         "gen_random_uuid() is not available",
         "Use lower(hex(randomblob(16))) or application-generated ids"),
    _sql("NOW_FUNCTION", "FUNCTION", r"\bNOW\s*\(\s*\)",
         "NOW() is not available", "Use CURRENT_TIMESTAMP or datetime('now')"),
    _sql("CREATE_EXTENSION", "EXTENSION", r"\bCREATE\s+EXTENSION\b",
         "Extensions are ignored", "Load extensions at connection time", is_warning=True),
    _sql("DEFERRABLE", "CONSTRAINT", r"\bDEFERRABLE\b",
         "Only foreign keys can be deferred", is_warning=True),
    _sql("ALTER_DROP_COLUMN", "DDL", r"\bALTER\s+TABLE\s+\S+\s+DROP\s+COLUMN\b",
         "DROP COLUMN requires SQLite 3.35+", is_warning=True),
    _sql("ALTER_RENAME_COLUMN", "DDL", r"\bRENAME\s+COLUMN\b",
         "RENAME COLUMN requires SQLite 3.25+", is_warning=True),
)

PATTERNS: dict[str, tuple[ForbiddenPattern, ...]] = {
    "postgres": POSTGRES_PATTERNS,
    "cockroachdb": COCKROACHDB_PATTERNS,
    "nile": NILE_PATTERNS,
    "dsql": DSQL_PATTERNS,
    "xata": POSTGRES_PATTERNS,
    "mysql": MYSQL_PATTERNS,
    "mariadb": MARIADB_PATTERNS,
    "planetscale": PLANETSCALE_PATTERNS,
    "sqlite": SQLITE_PATTERNS,
    "turso": SQLITE_PATTERNS,
}


def patterns_for(dialect: Dialect) -> tuple[ForbiddenPattern, ...]:
    """Forbidden patterns registered for *dialect* (empty when unknown)."""
    return PATTERNS.get(dialect.name, ())


def can_transform(dialect: Dialect) -> bool:
    """True when the transformer has rewrites for *dialect*."""
    return dialect.requires_transform or dialect.name == "nile"


# ------------------------------------------------------------------
# SQL validation
# ------------------------------------------------------------------


def _scan(sql: str, dialect: Dialect, location: str | None) -> DialectValidationResult:
    result = DialectValidationResult(dialect=dialect.name, can_transform=can_transform(dialect))
    for pattern in patterns_for(dialect):
        match = pattern.regex.search(sql)
        if match is None:
            continue
        result.add(
            CompatibilityIssue(
                category=pattern.category,
                feature=pattern.feature,
                detected=" ".join(match.group(0).split()),
                location=location,
                message=pattern.message,
                alternative=pattern.alternative,
                docs_url=DOCS_URLS.get(dialect.name),
            ),
            is_warning=pattern.is_warning,
        )
    return result


def validate_sql(
    sql: str,
    dialect: Dialect,
    location: str | None = None,
    transform: bool = False,
) -> DialectValidationResult:
    """Check SQL text against *dialect*'s forbidden patterns.

    With ``transform=True`` and a dialect the transformer supports, the SQL
    is rewritten first and the rewritten text is what gets checked.  The
    rewritten text is returned in ``transformed_sql``.

    Example:
        >>> from db_reconcile.dialects import get_dialect
        >>> validate_sql("CREATE TABLE path (id int);", get_dialect("sqlite")).valid
        True
        >>> validate_sql("CREATE TABLE p (a money);", get_dialect("sqlite")).errors[0].feature
        'MONEY'
    """
    if transform and can_transform(dialect):
        from db_reconcile.schema.transformer import transform_sql

        rewritten = transform_sql(sql, dialect)
        result = _scan(rewritten.sql, dialect, location)
        result.transformed_sql = rewritten.sql
        result.transforms = list(rewritten.transforms)
        result.skipped = list(rewritten.skipped)
        return result
    return _scan(sql, dialect, location)


def validate_statements(
    statements: list[str],
    dialect: Dialect,
    transform: bool = False,
) -> DialectValidationResult:
    """Validate each statement, locating issues as ``statement N`` (1-based)."""
    result = DialectValidationResult(dialect=dialect.name, can_transform=can_transform(dialect))
    rewritten: list[str] = []
    for index, statement in enumerate(statements, 1):
        single = validate_sql(statement, dialect, f"statement {index}", transform)
        result.merge(single)
        if single.transformed_sql is not None:
            rewritten.append(single.transformed_sql)
    if transform and result.can_transform:
        result.transformed_sql = "\n".join(s for s in rewritten if s.strip())
    return result


# ------------------------------------------------------------------
# Schema validation
# ------------------------------------------------------------------


def _issue(
    dialect: Dialect,
    category: Category,
    feature: str,
    detected: str,
    location: str | None,
    message: str,
    alternative: str | None = None,
) -> CompatibilityIssue:
    return CompatibilityIssue(
        category=category,
        feature=feature,
        detected=detected,
        location=location,
        message=message,
        alternative=alternative,
        docs_url=DOCS_URLS.get(dialect.name),
    )


def _check_blocked_types(
    schema: DatabaseSchema, dialect: Dialect, result: DialectValidationResult
) -> None:
    typed: list[tuple[str, str]] = []
    for table in schema.tables:
        typed.extend((f"{table.name}.{c.name}", c.data_type) for c in table.columns)
    for domain in schema.domains:
        typed.append((f"domain {domain.name}", domain.base_type))
    for composite in schema.composite_types:
        typed.extend(
            (f"type {composite.name}.{a.name}", a.data_type) for a in composite.attributes
        )
    for location, data_type in typed:
        blocked = dialect.blocked_type(data_type)
        if blocked is None:
            continue
        result.add(_issue(
            dialect, "DATA_TYPE", blocked.type_name.upper(), data_type, location,
            f"{blocked.type_name} is not supported by {dialect.display_name}",
            blocked.alternative,
        ))


_SEQUENCE_ALTERNATIVES = {
    "sqlite": "Use INTEGER PRIMARY KEY AUTOINCREMENT",
    "mysql": "Use AUTO_INCREMENT",
}


def _check_capabilities(
    schema: DatabaseSchema, dialect: Dialect, result: DialectValidationResult
) -> None:
    caps = dialect.capabilities
    name = dialect.display_name

    if not caps.supports_sequences:
        for seq in schema.sequences:
            result.add(_issue(
                dialect, "DDL", "CREATE_SEQUENCE", seq.name, f"sequence {seq.name}",
                f"Sequences are not supported by {name}",
                _SEQUENCE_ALTERNATIVES.get(dialect.family, "Use UUID primary keys"),
            ))
    for function in schema.functions:
        location = f"{function.kind} {function.name}"
        if not caps.supports_stored_procedures:
            result.add(_issue(
                dialect, "FUNCTION", f"CREATE_{function.kind.upper()}", function.name,
                location, f"Stored routines are not supported by {name}",
                "Move the logic into application code",
            ))
        elif dialect.family == "mysql" and function.language.lower() == "plpgsql":
            result.add(_issue(
                dialect, "FUNCTION", "PLPGSQL", function.language, location,
                "PL/pgSQL routines cannot run on MySQL",
                "Rewrite the routine in MySQL's procedural SQL",
            ))
    if not caps.supports_triggers:
        for trigger in schema.triggers:
            result.add(_issue(
                dialect, "TRIGGER", "CREATE_TRIGGER", trigger.name,
                f"trigger {trigger.name}", f"Triggers are not supported by {name}",
                "Move the logic into application code",
            ))
    if not caps.supports_composite_types:
        for composite in schema.composite_types:
            result.add(_issue(
                dialect, "DDL", "CREATE_TYPE_AS", composite.name, f"type {composite.name}",
                f"Composite types are not supported by {name}",
                "Use JSON or separate columns",
            ))
    if not caps.supports_materialized_views:
        for view in schema.materialized_views:
            result.add(_issue(
                dialect, "DDL", "MATERIALIZED_VIEW", view.name,
                f"materialized view {view.name}",
                f"Materialized views are not supported by {name}",
                "Use a regular view or a table",
            ))
    if not caps.supports_foreign_tables:
        for foreign in schema.foreign_tables:
            result.add(_issue(
                dialect, "DDL", "FOREIGN_TABLE", foreign.name, f"foreign table {foreign.name}",
                f"Foreign tables are not supported by {name}",
            ))
    if not caps.supports_enums and dialect.family not in ("mysql", "sqlite"):
        for enum in schema.enums:
            result.add(_issue(
                dialect, "DDL", "CREATE_ENUM", enum.name, f"enum {enum.name}",
                f"Enum types are not supported by {name}",
                "Use TEXT with a CHECK constraint",
            ))

    for table in schema.tables:
        _check_table_capabilities(table, dialect, result)


def _check_table_capabilities(
    table: Table, dialect: Dialect, result: DialectValidationResult
) -> None:
    caps = dialect.capabilities
    name = dialect.display_name

    if table.partitioning and not caps.supports_table_partitioning:
        result.add(_issue(
            dialect, "DDL", "PARTITION_BY", table.partitioning.type, table.name,
            f"Table partitioning is not supported by {name}", "Use a single table",
        ))
    for column in table.columns:
        location = f"{table.name}.{column.name}"
        if column.is_array and not caps.supports_array_columns:
            result.add(_issue(
                dialect, "DATA_TYPE", "ARRAY", f"{column.data_type}[]", location,
                f"Array columns are not supported by {name}", "Use JSON or TEXT",
            ), is_warning=dialect.family in ("mysql", "sqlite"))
        if column.identity and not caps.supports_identity_columns:
            result.add(_issue(
                dialect, "DDL", "IDENTITY", column.identity, location,
                f"Identity columns are not supported by {name}",
                _SEQUENCE_ALTERNATIVES.get(dialect.family, "Use UUID primary keys"),
            ))
    for index in table.indexes:
        if index.method not in caps.supported_index_methods:
            result.add(_issue(
                dialect, "INDEX", f"{index.method.upper()}_INDEX", index.method,
                f"{table.name}.{index.name}",
                f"{index.method} indexes are not supported by {name}", "Use a btree index",
            ))
    for constraint in table.constraints:
        location = f"{table.name}.{constraint.name}"
        if constraint.constraint_type == "FOREIGN_KEY" and not caps.supports_foreign_keys:
            result.add(_issue(
                dialect, "CONSTRAINT", "FOREIGN_KEY", constraint.references_table or "",
                location, f"Foreign key constraints are not supported by {name}",
                "Enforce referential integrity in the application",
            ))
        if constraint.deferrable and not caps.supports_deferrable_constraints:
            result.add(_issue(
                dialect, "CONSTRAINT", "DEFERRABLE", "DEFERRABLE", location,
                f"Deferrable constraints are not supported by {name}",
            ))
        if constraint.constraint_type == "EXCLUSION" and dialect.family != "postgres":
            result.add(_issue(
                dialect, "CONSTRAINT", "EXCLUSION", constraint.definition or "", location,
                f"Exclusion constraints are not supported by {name}",
            ))


def _check_extensions(
    schema: DatabaseSchema, dialect: Dialect, result: DialectValidationResult
) -> None:
    for extension in schema.extensions:
        location = f"extension {extension.name}"
        if dialect.name == "nile":
            preinstalled = extension.name in NILE_PREINSTALLED_EXTENSIONS
            result.add(_issue(
                dialect, "EXTENSION", "CREATE_EXTENSION", extension.name, location,
                "Extension is pre-installed" if preinstalled
                else "Extension is not available on Nile",
                "Remove the extension from the schema",
            ), is_warning=preinstalled)
        elif dialect.name == "dsql":
            result.add(_issue(
                dialect, "EXTENSION", "CREATE_EXTENSION", extension.name, location,
                "Extensions are not supported by Aurora DSQL",
                "Remove the extension dependency",
            ))
        elif dialect.family in ("mysql", "sqlite"):
            result.add(_issue(
                dialect, "EXTENSION", "CREATE_EXTENSION", extension.name, location,
                f"PostgreSQL extensions do not apply to {dialect.display_name}",
            ), is_warning=True)


def is_tenant_table(table: Table) -> bool:
    """A Nile table is tenant-aware when it carries a ``tenant_id`` column."""
    return any(c.name == "tenant_id" for c in table.columns)


def _primary_key_columns(table: Table) -> list[str]:
    for constraint in table.constraints:
        if constraint.constraint_type == "PRIMARY_KEY":
            return list(constraint.columns)
    return [c.name for c in table.columns if c.is_primary_key]


def _check_nile(schema: DatabaseSchema, dialect: Dialect, result: DialectValidationResult) -> None:
    tenant_tables = {t.name for t in schema.tables if is_tenant_table(t)}
    for table in schema.tables:
        if table.name in NILE_BUILTIN_TABLES:
            result.add(_issue(
                dialect, "TENANT", "BUILTIN_TABLE", table.name, table.name,
                f"'{table.name}' is a Nile built-in table and will not be managed",
                "Rename the table or remove it from the schema",
            ), is_warning=True)
            continue
        if table.name not in tenant_tables:
            continue

        tenant_id = next(c for c in table.columns if c.name == "tenant_id")
        if canonicalize_type(tenant_id.data_type).name != "uuid":
            result.add(_issue(
                dialect, "TENANT", "TENANT_ID_TYPE", tenant_id.data_type,
                f"{table.name}.tenant_id", "tenant_id must be of type uuid",
                "Declare tenant_id as UUID NOT NULL",
            ))
        if "tenant_id" not in _primary_key_columns(table):
            result.add(_issue(
                dialect, "TENANT", "TENANT_ID_IN_PK", table.name, table.name,
                "tenant_id must be part of the primary key",
                "Use PRIMARY KEY (tenant_id, id)",
            ))
        for column in table.columns:
            if canonicalize_type(column.data_type).name in ("serial", "bigserial", "smallserial"):
                result.add(_issue(
                    dialect, "TENANT", "TENANT_SERIAL", column.data_type,
                    f"{table.name}.{column.name}",
                    "Serial ids are not unique across tenants",
                    "Use UUID DEFAULT gen_random_uuid()",
                ), is_warning=True)

    for table in schema.tables:
        for constraint in table.constraints:
            if constraint.constraint_type != "FOREIGN_KEY" or not constraint.references_table:
                continue
            target = constraint.references_table
            if target in NILE_BUILTIN_TABLES:
                continue
            if (table.name in tenant_tables) != (target in tenant_tables):
                result.add(_issue(
                    dialect, "TENANT", "CROSS_TYPE_FK", f"{table.name} -> {target}",
                    f"{table.name}.{constraint.name}",
                    "Foreign keys between tenant-aware and shared tables are not allowed",
                    "Reference tables of the same kind only",
                ))

    result.add(_issue(
        dialect, "TENANT", "TRANSACTION_RULES", "", None,
        "Transactions touching tenant tables must stay within one tenant",
        "Set nile.tenant_id per transaction",
    ), is_warning=True)


def validate_schema_for_dialect(
    schema: DatabaseSchema, dialect: Dialect
) -> DialectValidationResult:
    """Semantic checks of a whole schema against *dialect*.

    Example:
        >>> from db_reconcile.dialects import get_dialect
        >>> from db_reconcile.schema.models import Sequence
        >>> result = validate_schema_for_dialect(
        ...     DatabaseSchema(sequences=[Sequence(name="order_seq")]), get_dialect("sqlite"))
        >>> [(e.category, e.feature) for e in result.errors]
        [('DDL', 'CREATE_SEQUENCE')]
    """
    result = DialectValidationResult(dialect=dialect.name, can_transform=can_transform(dialect))
    _check_blocked_types(schema, dialect, result)
    _check_capabilities(schema, dialect, result)
    _check_extensions(schema, dialect, result)
    if dialect.name == "nile":
        _check_nile(schema, dialect, result)
    return result
