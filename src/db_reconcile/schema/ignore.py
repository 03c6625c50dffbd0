"""Ignore engine: typed glob patterns that hide objects from diffs.

An ignore file holds one pattern per line::

    [!][TYPE:][parent.]pattern

``TYPE`` defaults to ``TABLE``.  Sub-object types (columns, indexes,
constraints, partitions, triggers) must name their parent table, e.g.
``COLUMN:users.password_hash`` or ``INDEX:*.idx_tmp_*``.  Matching is a
case-insensitive glob (``*`` and ``?``) and the last matching line wins,
so ``!`` can re-include something hidden by an earlier line.

Usage:
    from db_reconcile.schema.ignore import load_ignore_file, filter_schema

    rules = load_ignore_file(Path(".db-reconcile-ignore"))
    visible = filter_schema(schema, rules)
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from db_reconcile.errors import IgnoreDependencyError, IgnorePatternError
from db_reconcile.schema.models import Constraint, DatabaseSchema, Table
from db_reconcile.schema.types import nextval_sequence

logger = logging.getLogger(__name__)

OBJECT_TYPES: tuple[str, ...] = (
    "TABLE", "COLUMN", "INDEX", "CONSTRAINT", "CHECK", "PRIMARY_KEY",
    "FOREIGN_KEY", "EXCLUSION", "PARTITION", "ENUM", "DOMAIN", "SEQUENCE",
    "COMPOSITE_TYPE", "FUNCTION", "PROCEDURE", "TRIGGER", "VIEW",
    "MATERIALIZED_VIEW", "FOREIGN_TABLE", "EXTENSION", "COLLATION",
)

REQUIRES_PARENT = frozenset({
    "COLUMN", "INDEX", "CONSTRAINT", "CHECK", "PRIMARY_KEY",
    "FOREIGN_KEY", "EXCLUSION", "PARTITION", "TRIGGER",
})

DEFAULT_PATTERNS: tuple[str, ...] = (
    "TABLE:_reconcile_*",
    "TABLE:__reconcile_*",
    "TABLE:pg_*",
    "TABLE:_temp_*",
    "TABLE:tmp_*",
)

DEFAULT_IGNORE_FILE = """\
# db-reconcile ignore file
# Objects matching these patterns are left out of introspection and diffs.
#
# TYPE:pattern          match an object type
# TYPE:table.pattern    match a sub-object (COLUMN, INDEX, CONSTRAINT, ...)
# pattern               match a table
# !pattern              re-include (last match wins)
#
# Always applied: TABLE:_reconcile_*  TABLE:pg_*  TABLE:_temp_*  TABLE:tmp_*
#
# COLUMN:users.password_hash
# INDEX:*.idx_temp_*
# FUNCTION:debug_*
# ENUM:test_*
"""


def _glob_regex(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.IGNORECASE)


@dataclass(frozen=True)
class IgnorePattern:
    """One parsed ignore line."""

    object_type: str
    pattern: str
    parent: str | None = None
    negated: bool = False
    raw: str = ""
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)
    _parent_regex: re.Pattern[str] | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _glob_regex(self.pattern))
        object.__setattr__(
            self, "_parent_regex", _glob_regex(self.parent) if self.parent else None
        )

    def matches(self, object_types: tuple[str, ...], name: str, parent: str | None) -> bool:
        """Return True if this pattern applies to the given object."""
        if self.object_type not in object_types:
            return False
        if self._parent_regex is not None:
            if parent is None or not self._parent_regex.match(parent):
                return False
        return bool(self._regex.match(name))


def parse_pattern(line: str, line_number: int | None = None) -> IgnorePattern | None:
    """Parse one ignore line.

    Returns:
        The pattern, or None for blank lines and ``#`` comments.

    Raises:
        IgnorePatternError: If a sub-object type has no parent table.

    Example:
        >>> p = parse_pattern("!COLUMN:users.secret_*")
        >>> (p.object_type, p.parent, p.pattern, p.negated)
        ('COLUMN', 'users', 'secret_*', True)
        >>> parse_pattern("audit_*").object_type
        'TABLE'
    """
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    negated = text.startswith("!")
    body = text[1:].strip() if negated else text
    if not body:
        raise IgnorePatternError(line, "empty pattern", line_number)

    object_type = "TABLE"
    type_part, sep, rest = body.partition(":")
    if sep and type_part.upper() in OBJECT_TYPES:
        object_type = type_part.upper()
        body = rest

    parent = None
    if object_type in REQUIRES_PARENT:
        parent, dot, name = body.partition(".")
        if not dot or not parent or not name:
            raise IgnorePatternError(
                line,
                f"{object_type} pattern requires a table name "
                f"(e.g. {object_type}:table_name.pattern)",
                line_number,
            )
        body = name

    return IgnorePattern(
        object_type=object_type,
        pattern=body,
        parent=parent,
        negated=negated,
        raw=text,
    )


@dataclass(frozen=True)
class IgnoreRules:
    """Immutable ordered list of ignore patterns.

    Example:
        >>> rules = IgnoreRules.from_lines(["TABLE:audit_*", "!audit_keep"])
        >>> rules.is_ignored("TABLE", "audit_log")
        True
        >>> rules.is_ignored("TABLE", "audit_keep")
        False
        >>> rules.is_ignored("TABLE", "_reconcile_migrations")
        True
    """

    patterns: tuple[IgnorePattern, ...] = ()

    @classmethod
    def from_lines(cls, lines: list[str], include_defaults: bool = True) -> "IgnoreRules":
        parsed: list[IgnorePattern] = []
        if include_defaults:
            parsed.extend(p for p in (parse_pattern(d) for d in DEFAULT_PATTERNS) if p)
        for number, line in enumerate(lines, start=1):
            pattern = parse_pattern(line, number)
            if pattern is not None:
                parsed.append(pattern)
        return cls(tuple(parsed))

    def match(
        self, object_type: str | tuple[str, ...], name: str, parent: str | None = None
    ) -> IgnorePattern | None:
        """Return the last pattern matching the object, or None."""
        types = (object_type,) if isinstance(object_type, str) else object_type
        matched = None
        for pattern in self.patterns:
            if pattern.matches(types, name, parent):
                matched = pattern
        return matched

    def is_ignored(
        self, object_type: str | tuple[str, ...], name: str, parent: str | None = None
    ) -> bool:
        """Return True if the final matching pattern ignores the object."""
        matched = self.match(object_type, name, parent)
        return matched is not None and not matched.negated


def load_ignore_file(path: Path | None, include_defaults: bool = True) -> IgnoreRules:
    """Load ignore rules from *path*; a missing file yields the defaults.

    Raises:
        IgnorePatternError: If any line is invalid.
    """
    lines: list[str] = []
    if path is not None and path.exists():
        lines = path.read_text(encoding="utf-8").splitlines()
        logger.debug("Loaded %d ignore line(s) from %s", len(lines), path)
    return IgnoreRules.from_lines(lines, include_defaults=include_defaults)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _constraint_types(constraint: Constraint) -> tuple[str, ...]:
    return ("CONSTRAINT", constraint.constraint_type)


def _filter_table(table: Table, rules: IgnoreRules) -> Table:
    name = table.name
    kept_columns = [
        c for c in table.columns if not rules.is_ignored("COLUMN", c.name, name)
    ]
    kept_names = {c.name for c in kept_columns}
    indexes = [
        i for i in table.indexes
        if not rules.is_ignored("INDEX", i.name, name)
        and all(col in kept_names for col in i.columns)
    ]
    constraints = [
        c for c in table.constraints
        if not rules.is_ignored(_constraint_types(c), c.name, name)
        and all(col in kept_names for col in c.columns)
    ]
    partitioning = table.partitioning
    if partitioning is not None:
        partitioning = partitioning.model_copy(update={
            "children": [
                child for child in partitioning.children
                if not rules.is_ignored("PARTITION", child.name, name)
            ],
        })
    if not any(c.constraint_type == "PRIMARY_KEY" for c in constraints):
        kept_columns = [
            c.model_copy(update={"is_primary_key": False}) for c in kept_columns
        ]
    return Table(
        name=table.name,
        schema_name=table.schema_name,
        columns=kept_columns,
        indexes=indexes,
        constraints=constraints,
        partitioning=partitioning,
        comment=table.comment,
        tracking_id=table.tracking_id,
    )


def filter_schema(schema: DatabaseSchema, rules: IgnoreRules) -> DatabaseSchema:
    """Return a copy of *schema* without ignored objects.

    Triggers on ignored tables are dropped along with the table.
    """
    tables = [
        _filter_table(t, rules)
        for t in schema.tables
        if not rules.is_ignored("TABLE", t.name)
    ]
    table_names = {t.name for t in tables}
    return DatabaseSchema(
        extensions=[e for e in schema.extensions if not rules.is_ignored("EXTENSION", e.name)],
        collations=[c for c in schema.collations if not rules.is_ignored("COLLATION", c.name)],
        enums=[e for e in schema.enums if not rules.is_ignored("ENUM", e.name)],
        domains=[d for d in schema.domains if not rules.is_ignored("DOMAIN", d.name)],
        composite_types=[
            c for c in schema.composite_types
            if not rules.is_ignored("COMPOSITE_TYPE", c.name)
        ],
        sequences=[s for s in schema.sequences if not rules.is_ignored("SEQUENCE", s.name)],
        tables=tables,
        functions=[
            f for f in schema.functions
            if not rules.is_ignored(f.kind.upper(), f.name)
        ],
        triggers=[
            t for t in schema.triggers
            if t.table in table_names and not rules.is_ignored("TRIGGER", t.name, t.table)
        ],
        views=[v for v in schema.views if not rules.is_ignored("VIEW", v.name)],
        materialized_views=[
            v for v in schema.materialized_views
            if not rules.is_ignored("MATERIALIZED_VIEW", v.name)
        ],
        foreign_servers=list(schema.foreign_servers),
        foreign_tables=[
            f for f in schema.foreign_tables
            if not rules.is_ignored("FOREIGN_TABLE", f.name)
        ],
    )


def ignore_dependency_errors(schema: DatabaseSchema, rules: IgnoreRules) -> list[str]:
    """List kept columns that reference an ignored type or sequence.

    Runs against the *unfiltered* schema so the ignored types are still
    visible.

    Example:
        >>> from db_reconcile.schema.models import Column, EnumType, Table
        >>> schema = DatabaseSchema(
        ...     enums=[EnumType(name="mood", values=["ok"])],
        ...     tables=[Table(name="t", columns=[Column(name="c", data_type="mood")])],
        ... )
        >>> ignore_dependency_errors(schema, IgnoreRules.from_lines(["ENUM:mood"]))
        ['Column "t.c" uses ignored ENUM "mood". Either un-ignore the ENUM or ignore this column.']
    """
    ignored: dict[str, dict[str, str]] = {
        "ENUM": {e.name.lower(): e.name for e in schema.enums if rules.is_ignored("ENUM", e.name)},
        "DOMAIN": {d.name.lower(): d.name for d in schema.domains if rules.is_ignored("DOMAIN", d.name)},
        "COMPOSITE_TYPE": {
            c.name.lower(): c.name
            for c in schema.composite_types
            if rules.is_ignored("COMPOSITE_TYPE", c.name)
        },
    }
    ignored_sequences = {
        s.name.lower() for s in schema.sequences if rules.is_ignored("SEQUENCE", s.name)
    }

    problems: list[str] = []
    for table in schema.tables:
        if rules.is_ignored("TABLE", table.name):
            continue
        for column in table.columns:
            if rules.is_ignored("COLUMN", column.name, table.name):
                continue
            where = f'Column "{table.name}.{column.name}"'
            type_key = column.data_type.lower()
            for kind, names in ignored.items():
                if type_key in names:
                    problems.append(
                        f'{where} uses ignored {kind} "{names[type_key]}". '
                        f"Either un-ignore the {kind} or ignore this column."
                    )
            sequence = nextval_sequence(column.default)
            if sequence and sequence.lower() in ignored_sequences:
                problems.append(
                    f'{where} uses ignored SEQUENCE "{sequence}". '
                    "Either un-ignore the SEQUENCE or ignore this column."
                )
    return problems


def validate_ignore_dependencies(schema: DatabaseSchema, rules: IgnoreRules) -> None:
    """Raise ``IgnoreDependencyError`` if an ignored type is still in use."""
    problems = ignore_dependency_errors(schema, rules)
    if problems:
        raise IgnoreDependencyError(problems)
