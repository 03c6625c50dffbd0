"""Structural diff between two Canonical Schema Models.

Produces a tree of typed records (``added`` / ``removed`` / ``modified``)
for tables, columns, indexes, constraints and every schema-level object.
Column modifications carry field-level changes::

    {field: 'type' | 'nullable' | 'default' | 'length' | 'precision' |
            'scale' | 'unique' | 'primaryKey' | 'identity' | 'comment',
     from, to}

Entity identity is decided by a *matcher*.  ``match_by_name`` is the plain
structural policy; ``db_reconcile.schema.comparator`` supplies a matcher
that also follows tracking ids and structural twins, which is how renames
enter the same diff tree.

Pure logic -- no I/O.

Usage:
    from db_reconcile.schema.diff import diff_schemas, format_summary

    diff = diff_schemas(current, desired)
    for line in format_summary(diff):
        print(line)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    Index,
    Table,
)
from db_reconcile.schema.types import (
    format_type,
    is_serial,
    nextval_sequence,
    normalize_default,
    storage_type,
)


DiffAction = Literal["added", "removed", "modified"]
MatchedBy = Literal["name", "tracking_id", "structure"]

# Schema-level kinds diffed generically, in summary order
OBJECT_KINDS: tuple[str, ...] = (
    "extensions",
    "collations",
    "enums",
    "domains",
    "composite_types",
    "sequences",
    "functions",
    "triggers",
    "views",
    "materialized_views",
    "foreign_servers",
    "foreign_tables",
)


# ============================================================================
# Diff Records
# ============================================================================


class FieldChange(BaseModel):
    """One changed attribute.

    Example:
        >>> FieldChange(field="nullable", from_=True, to=False).model_dump(by_alias=True)
        {'field': 'nullable', 'from': True, 'to': False}
    """

    model_config = ConfigDict(populate_by_name=True)

    field: str
    from_: Any = Field(default=None, alias="from")
    to: Any = None


class Rename(BaseModel):
    """An entity matched across a name change."""

    kind: str  # table, column, index, constraint, enum, sequence, function, ...
    old_name: str
    new_name: str
    table: str | None = None  # owning table (new name) for sub-objects
    arguments: str | None = None  # "(integer, text)" for functions
    matched_by: MatchedBy = "tracking_id"

    def describe(self) -> str:
        owner = f"{self.table}." if self.table else ""
        return f"{self.kind} {owner}{self.old_name} -> {owner}{self.new_name}"


class ItemDiff(BaseModel):
    """Diff record for a column, index, constraint or schema-level object."""

    kind: str
    name: str
    action: DiffAction
    table: str | None = None
    before: Any = None
    after: Any = None
    changes: list[FieldChange] = Field(default_factory=list)

    def change(self, field_name: str) -> FieldChange | None:
        """Return the change for *field_name*, if present."""
        return next((c for c in self.changes if c.field == field_name), None)


class TableDiff(BaseModel):
    """Diff record for a table and everything it owns."""

    name: str
    action: DiffAction
    before: Table | None = None
    after: Table | None = None
    columns: list[ItemDiff] = Field(default_factory=list)
    indexes: list[ItemDiff] = Field(default_factory=list)
    constraints: list[ItemDiff] = Field(default_factory=list)
    changes: list[FieldChange] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.columns or self.indexes or self.constraints or self.changes)


class SchemaDiff(BaseModel):
    """Complete diff between a current and a desired schema.

    Example:
        >>> diff = SchemaDiff()
        >>> diff.is_empty
        True
    """

    renames: list[Rename] = Field(default_factory=list)
    tables: list[TableDiff] = Field(default_factory=list)
    objects: list[ItemDiff] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.renames or self.tables or self.objects)

    def objects_of(self, kind: str, action: DiffAction | None = None) -> list[ItemDiff]:
        """Schema-level diffs of one kind, optionally filtered by action."""
        return [
            o for o in self.objects
            if o.kind == kind and (action is None or o.action == action)
        ]

    def tables_with(self, action: DiffAction) -> list[TableDiff]:
        return [t for t in self.tables if t.action == action]

    def renames_of(self, kind: str) -> list[Rename]:
        return [r for r in self.renames if r.kind == kind]

    def counts(self) -> dict[str, dict[str, int]]:
        """Count diff records per category and action."""
        result: dict[str, dict[str, int]] = {}

        def bump(category: str, action: str) -> None:
            result.setdefault(category, {}).setdefault(action, 0)
            result[category][action] += 1

        for rename in self.renames:
            bump("indexes" if rename.kind == "index" else f"{rename.kind}s", "renamed")
        for table in self.tables:
            bump("tables", table.action)
            if table.action != "modified":
                continue
            for category, items in (
                ("columns", table.columns),
                ("indexes", table.indexes),
                ("constraints", table.constraints),
            ):
                for item in items:
                    bump(category, item.action)
        for obj in self.objects:
            bump(obj.kind, obj.action)
        return result


# ============================================================================
# Matching
# ============================================================================


@dataclass
class Pair:
    """Two entities judged to be the same object."""

    before: Any
    after: Any
    matched_by: MatchedBy = "name"


@dataclass
class Matching:
    """Outcome of matching one collection."""

    pairs: list[Pair] = field(default_factory=list)
    added: list[Any] = field(default_factory=list)
    removed: list[Any] = field(default_factory=list)


@dataclass
class MatchContext:
    """Renames already decided at an outer level.

    ``tables`` maps old table name to new; ``columns`` maps old column name
    to new within the table currently being diffed.
    """

    tables: dict[str, str] = field(default_factory=dict)
    columns: dict[str, str] = field(default_factory=dict)


Matcher = Callable[[str, list[Any], list[Any], MatchContext], Matching]


def identity_key(kind: str, obj: Any) -> str:
    """Name used for identity; functions are keyed by signature."""
    if kind == "functions":
        return obj.signature
    return obj.name


def match_by_name(
    kind: str, before: list[Any], after: list[Any], context: MatchContext
) -> Matching:
    """Match entities purely by name."""
    before_map = {identity_key(kind, b): b for b in before}
    after_keys = {identity_key(kind, a) for a in after}
    matching = Matching()
    for item in after:
        key = identity_key(kind, item)
        if key in before_map:
            matching.pairs.append(Pair(before_map[key], item))
        else:
            matching.added.append(item)
    matching.removed = [b for b in before if identity_key(kind, b) not in after_keys]
    return matching


# ============================================================================
# Field Comparison
# ============================================================================


_WS_RE = re.compile(r"\s+")


def normalize_sql_text(text: str | None) -> str | None:
    """Collapse whitespace and case for comparing SQL bodies."""
    if text is None:
        return None
    collapsed = _WS_RE.sub(" ", text).strip().rstrip(";").strip()
    return collapsed.lower() or None


def _effective_default(column: Column) -> str | None:
    if is_serial(column.data_type) or nextval_sequence(column.default):
        return None
    return normalize_default(column.default)


def diff_column(before: Column, after: Column) -> list[FieldChange]:
    """Field-level changes between two versions of a column.

    Example:
        >>> a = Column(name="email", data_type="varchar(100)", is_nullable=True)
        >>> b = Column(name="email", data_type="varchar(255)", is_nullable=False)
        >>> [c.field for c in diff_column(a, b)]
        ['nullable', 'length']
    """
    changes: list[FieldChange] = []
    before_type = (storage_type(before.data_type), before.is_array)
    after_type = (storage_type(after.data_type), after.is_array)
    if before_type != after_type:
        changes.append(FieldChange(
            field="type",
            from_=format_type(before.data_type, is_array=before.is_array),
            to=format_type(after.data_type, is_array=after.is_array),
        ))
    if before.is_nullable != after.is_nullable:
        changes.append(FieldChange(field="nullable", from_=before.is_nullable, to=after.is_nullable))
    if _effective_default(before) != _effective_default(after):
        changes.append(FieldChange(field="default", from_=before.default, to=after.default))
    for name in ("length", "precision", "scale"):
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            changes.append(FieldChange(field=name, from_=old, to=new))
    if before.is_unique != after.is_unique:
        changes.append(FieldChange(field="unique", from_=before.is_unique, to=after.is_unique))
    if before.is_primary_key != after.is_primary_key:
        changes.append(FieldChange(
            field="primaryKey", from_=before.is_primary_key, to=after.is_primary_key
        ))
    if before.identity != after.identity:
        changes.append(FieldChange(field="identity", from_=before.identity, to=after.identity))
    if (before.comment or None) != (after.comment or None):
        changes.append(FieldChange(field="comment", from_=before.comment, to=after.comment))
    return changes


def diff_index(before: Index, after: Index, context: MatchContext) -> list[FieldChange]:
    """Field-level changes between two versions of an index."""
    changes: list[FieldChange] = []
    mapped = [context.columns.get(c, c) for c in before.columns]
    if mapped != after.columns:
        changes.append(FieldChange(field="columns", from_=before.columns, to=after.columns))
    if before.is_unique != after.is_unique:
        changes.append(FieldChange(field="unique", from_=before.is_unique, to=after.is_unique))
    if before.method != after.method:
        changes.append(FieldChange(field="method", from_=before.method, to=after.method))
    for name in ("where", "expression"):
        old, new = getattr(before, name), getattr(after, name)
        if normalize_sql_text(old) != normalize_sql_text(new):
            changes.append(FieldChange(field=name, from_=old, to=new))
    if (before.comment or None) != (after.comment or None):
        changes.append(FieldChange(field="comment", from_=before.comment, to=after.comment))
    return changes


def diff_constraint(
    before: Constraint, after: Constraint, context: MatchContext
) -> list[FieldChange]:
    """Field-level changes between two versions of a constraint."""
    changes: list[FieldChange] = []
    if before.constraint_type != after.constraint_type:
        changes.append(FieldChange(
            field="type", from_=before.constraint_type, to=after.constraint_type
        ))
    if [context.columns.get(c, c) for c in before.columns] != after.columns:
        changes.append(FieldChange(field="columns", from_=before.columns, to=after.columns))
    for name in ("check_expr", "definition"):
        old, new = getattr(before, name), getattr(after, name)
        if normalize_sql_text(old) != normalize_sql_text(new):
            changes.append(FieldChange(field=name, from_=old, to=new))
    ref_before = context.tables.get(before.references_table or "", before.references_table)
    if ref_before != after.references_table:
        changes.append(FieldChange(
            field="references_table", from_=before.references_table, to=after.references_table
        ))
    if before.references_columns != after.references_columns:
        changes.append(FieldChange(
            field="references_columns",
            from_=before.references_columns,
            to=after.references_columns,
        ))
    for name in ("on_delete", "on_update", "deferrable"):
        old, new = getattr(before, name), getattr(after, name)
        if old != new:
            changes.append(FieldChange(field=name, from_=old, to=new))
    return changes


_OBJECT_TEXT_FIELDS = {"definition", "body", "when", "check_expr", "default"}

# Options where an unset desired value means "whatever the database chose"
_DATABASE_DEFAULTED = {
    "version", "schema_name", "data_type", "start", "increment",
    "min_value", "max_value", "cache", "owned_by", "locale",
}


def diff_object(kind: str, before: Any, after: Any, context: MatchContext) -> list[FieldChange]:
    """Generic field comparison for schema-level objects."""
    exclude = {"name", "tracking_id"}
    old = before.model_dump(exclude=exclude)
    new = after.model_dump(exclude=exclude)
    if kind == "triggers":
        old["table"] = context.tables.get(old["table"], old["table"])
    changes: list[FieldChange] = []
    for key in new:
        a, b = old.get(key), new[key]
        if b is None and key in _DATABASE_DEFAULTED:
            continue
        if key in _OBJECT_TEXT_FIELDS:
            equal = normalize_sql_text(a) == normalize_sql_text(b)
        else:
            equal = a == b
        if not equal:
            changes.append(FieldChange(field=key, from_=a, to=b))
    return changes


# ============================================================================
# Table and Schema Diff
# ============================================================================


def is_column_unique_constraint(constraint: Constraint) -> bool:
    """Single-column UNIQUE constraints are tracked on the column instead."""
    return constraint.constraint_type == "UNIQUE" and len(constraint.columns) == 1


def _diffable_constraints(table: Table) -> list[Constraint]:
    return [
        c for c in table.constraints
        if c.constraint_type != "PRIMARY_KEY" and not is_column_unique_constraint(c)
    ]


def _record_rename(
    renames: list[Rename], kind: str, pair: Pair, table: str | None = None
) -> None:
    if pair.before.name != pair.after.name:
        if kind == "trigger":
            table = pair.after.table
        arguments = None
        if kind == "function":
            arguments = pair.before.signature[len(pair.before.name):]
        renames.append(Rename(
            kind=kind,
            old_name=pair.before.name,
            new_name=pair.after.name,
            table=table,
            arguments=arguments,
            matched_by="structure" if pair.matched_by == "structure" else "tracking_id",
        ))


def diff_table(
    before: Table,
    after: Table,
    matcher: Matcher = match_by_name,
    context: MatchContext | None = None,
) -> tuple[TableDiff, list[Rename]]:
    """Diff two versions of a table that are known to be the same object.

    Returns:
        ``(table_diff, renames)``; the table diff is empty when only
        renames (or nothing) changed.
    """
    context = context or MatchContext()
    renames: list[Rename] = []
    table_name = after.name
    result = TableDiff(name=table_name, action="modified", before=before, after=after)

    column_match = matcher("columns", before.columns, after.columns, context)
    column_map: dict[str, str] = {}
    for pair in sorted(column_match.pairs, key=lambda p: p.after.ordinal):
        column_map[pair.before.name] = pair.after.name
        _record_rename(renames, "column", pair, table_name)
        changes = diff_column(pair.before, pair.after)
        if changes:
            result.columns.append(ItemDiff(
                kind="column", name=pair.after.name, action="modified",
                table=table_name, before=pair.before, after=pair.after, changes=changes,
            ))
    for column in sorted(column_match.added, key=lambda c: c.ordinal):
        result.columns.append(ItemDiff(
            kind="column", name=column.name, action="added", table=table_name, after=column,
        ))
    for column in sorted(column_match.removed, key=lambda c: c.ordinal):
        result.columns.append(ItemDiff(
            kind="column", name=column.name, action="removed", table=table_name, before=column,
        ))

    inner = MatchContext(tables=context.tables, columns=column_map)

    index_match = matcher("indexes", before.indexes, after.indexes, inner)
    for pair in sorted(index_match.pairs, key=lambda p: p.after.name):
        _record_rename(renames, "index", pair, table_name)
        changes = diff_index(pair.before, pair.after, inner)
        if changes:
            result.indexes.append(ItemDiff(
                kind="index", name=pair.after.name, action="modified",
                table=table_name, before=pair.before, after=pair.after, changes=changes,
            ))
    for index in sorted(index_match.added, key=lambda i: i.name):
        result.indexes.append(ItemDiff(kind="index", name=index.name, action="added", table=table_name, after=index))
    for index in sorted(index_match.removed, key=lambda i: i.name):
        result.indexes.append(ItemDiff(kind="index", name=index.name, action="removed", table=table_name, before=index))

    constraint_match = matcher(
        "constraints", _diffable_constraints(before), _diffable_constraints(after), inner
    )
    for pair in sorted(constraint_match.pairs, key=lambda p: p.after.name):
        _record_rename(renames, "constraint", pair, table_name)
        changes = diff_constraint(pair.before, pair.after, inner)
        if changes:
            result.constraints.append(ItemDiff(
                kind="constraint", name=pair.after.name, action="modified",
                table=table_name, before=pair.before, after=pair.after, changes=changes,
            ))
    for con in sorted(constraint_match.added, key=lambda c: c.name):
        result.constraints.append(ItemDiff(kind="constraint", name=con.name, action="added", table=table_name, after=con))
    for con in sorted(constraint_match.removed, key=lambda c: c.name):
        result.constraints.append(ItemDiff(kind="constraint", name=con.name, action="removed", table=table_name, before=con))

    if (before.comment or None) != (after.comment or None):
        result.changes.append(FieldChange(field="comment", from_=before.comment, to=after.comment))
    old_part = before.partitioning.model_dump() if before.partitioning else None
    new_part = after.partitioning.model_dump() if after.partitioning else None
    if old_part != new_part:
        result.changes.append(FieldChange(field="partitioning", from_=old_part, to=new_part))

    return result, renames


def diff_schemas(
    current: DatabaseSchema,
    desired: DatabaseSchema,
    matcher: Matcher = match_by_name,
) -> SchemaDiff:
    """Compute the diff that turns *current* into *desired*.

    Deterministic and total: every object on either side appears in
    exactly one pair, ``added`` or ``removed`` record.

    Example:
        >>> from db_reconcile.schema.models import Column, Table
        >>> cur = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="int")])])
        >>> new = DatabaseSchema(tables=[Table(name="t", columns=[
        ...     Column(name="a", data_type="int"), Column(name="b", data_type="text")])])
        >>> d = diff_schemas(cur, new)
        >>> [(c.name, c.action) for c in d.tables[0].columns]
        [('b', 'added')]
    """
    result = SchemaDiff()
    context = MatchContext()

    table_match = matcher("tables", current.tables, desired.tables, context)
    for pair in table_match.pairs:
        context.tables[pair.before.name] = pair.after.name
        _record_rename(result.renames, "table", pair)

    for pair in sorted(table_match.pairs, key=lambda p: p.after.name):
        table_diff, renames = diff_table(pair.before, pair.after, matcher, context)
        result.renames.extend(renames)
        if not table_diff.is_empty:
            result.tables.append(table_diff)
    for table in sorted(table_match.added, key=lambda t: t.name):
        result.tables.append(TableDiff(name=table.name, action="added", after=table))
    for table in sorted(table_match.removed, key=lambda t: t.name):
        result.tables.append(TableDiff(name=table.name, action="removed", before=table))

    for kind in OBJECT_KINDS:
        match = matcher(kind, getattr(current, kind), getattr(desired, kind), context)
        for pair in sorted(match.pairs, key=lambda p: identity_key(kind, p.after)):
            _record_rename(result.renames, kind[:-1], pair)
            changes = diff_object(kind, pair.before, pair.after, context)
            if changes:
                result.objects.append(ItemDiff(
                    kind=kind, name=pair.after.name, action="modified",
                    before=pair.before, after=pair.after, changes=changes,
                ))
        for obj in sorted(match.added, key=lambda o: identity_key(kind, o)):
            result.objects.append(ItemDiff(kind=kind, name=obj.name, action="added", after=obj))
        for obj in sorted(match.removed, key=lambda o: identity_key(kind, o)):
            result.objects.append(ItemDiff(kind=kind, name=obj.name, action="removed", before=obj))

    return result


# ============================================================================
# Summary
# ============================================================================


def format_summary(diff: SchemaDiff) -> list[str]:
    """Categorized human-readable summary, renames first.

    Example:
        >>> format_summary(SchemaDiff())
        ['No changes']
    """
    if diff.is_empty:
        return ["No changes"]
    lines = [f"renamed {r.describe()}" for r in diff.renames]
    for category, actions in diff.counts().items():
        parts = [
            f"{actions[action]} {action}"
            for action in ("added", "removed", "modified", "renamed")
            if actions.get(action)
        ]
        lines.append(f"{category.replace('_', ' ')}: {', '.join(parts)}")
    return lines
