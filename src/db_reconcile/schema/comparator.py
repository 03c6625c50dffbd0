"""Semantic schema comparison with rename detection.

Builds on the structural diff in ``db_reconcile.schema.diff`` by swapping
in a matcher that decides identity in three passes:

1. Same ``tracking_id`` on both sides -- authoritative, even across names.
2. Same name among what is left.
3. A *unique* structural twin among what is still unmatched: tables with
   the same column names and types, indexes on the same columns with the
   same uniqueness, constraints with the same definition.  Ambiguous twins
   stay ``added`` / ``removed``.

Also provides the helpers around comparison: tracking id merging between
snapshot, desired and introspected schemas, scoping of what is compared,
and destructive-change classification.

Usage:
    from db_reconcile.schema.comparator import compare_schemas, classify_destructive

    diff = compare_schemas(current, desired)
    destructive = classify_destructive(diff)
"""

import logging
from collections import Counter
from typing import Any

from pydantic import BaseModel

from db_reconcile.schema.diff import (
    FieldChange,
    ItemDiff,
    Matching,
    MatchContext,
    Pair,
    SchemaDiff,
    TableDiff,
    diff_schemas,
    identity_key,
    normalize_sql_text,
)
from db_reconcile.schema.models import DatabaseSchema, Table
from db_reconcile.schema.types import is_narrowing, storage_type

logger = logging.getLogger(__name__)

# Schema-level kinds whose removal loses data or behaviour
DESTRUCTIVE_OBJECT_KINDS = frozenset({
    "enums",
    "domains",
    "sequences",
    "composite_types",
    "views",
    "materialized_views",
    "functions",
    "triggers",
})

_TYPE_FIELDS = {"type", "length", "precision", "scale"}


# ------------------------------------------------------------------
# Matching
# ------------------------------------------------------------------


def _signature(kind: str, obj: Any, context: MatchContext, side: str) -> Any:
    """Structural fingerprint used for twin detection, or None."""
    if kind == "tables":
        return tuple(sorted(
            (c.name, storage_type(c.data_type), c.is_array) for c in obj.columns
        ))
    if kind == "indexes":
        columns = obj.columns
        if side == "before":
            columns = [context.columns.get(c, c) for c in columns]
        return (tuple(columns), obj.is_unique, normalize_sql_text(obj.expression))
    if kind == "constraints":
        columns = obj.columns
        ref_table = obj.references_table
        if side == "before":
            columns = [context.columns.get(c, c) for c in columns]
            ref_table = context.tables.get(ref_table or "", ref_table)
        return (
            obj.constraint_type,
            tuple(columns),
            normalize_sql_text(obj.check_expr),
            normalize_sql_text(obj.definition),
            ref_table,
            tuple(obj.references_columns),
        )
    return None


def semantic_matcher(
    kind: str, before: list[Any], after: list[Any], context: MatchContext
) -> Matching:
    """Match by tracking id, then name, then unique structural twin."""
    matching = Matching()
    unmatched_before = list(before)
    unmatched_after: list[Any] = []

    by_tracking: dict[str, Any] = {}
    duplicated = {
        tid for tid, n in Counter(b.tracking_id for b in before if b.tracking_id).items()
        if n > 1
    }
    for item in before:
        if item.tracking_id and item.tracking_id not in duplicated:
            by_tracking[item.tracking_id] = item

    for item in after:
        partner = by_tracking.pop(item.tracking_id, None) if item.tracking_id else None
        if partner is not None:
            matching.pairs.append(Pair(partner, item, "tracking_id"))
            unmatched_before.remove(partner)
        else:
            unmatched_after.append(item)

    by_name = {identity_key(kind, b): b for b in unmatched_before}
    still_after: list[Any] = []
    for item in unmatched_after:
        partner = by_name.pop(identity_key(kind, item), None)
        if partner is not None:
            matching.pairs.append(Pair(partner, item, "name"))
            unmatched_before.remove(partner)
        else:
            still_after.append(item)

    before_sigs = {id(b): _signature(kind, b, context, "before") for b in unmatched_before}
    after_sigs = {id(a): _signature(kind, a, context, "after") for a in still_after}
    before_counts = Counter(s for s in before_sigs.values() if s is not None)
    after_counts = Counter(s for s in after_sigs.values() if s is not None)

    for item in list(unmatched_before):
        sig = before_sigs[id(item)]
        if sig is None or before_counts[sig] != 1 or after_counts[sig] != 1:
            continue
        twin = next(a for a in still_after if after_sigs[id(a)] == sig)
        logger.debug("Matched %s %s -> %s by structure", kind, item.name, twin.name)
        matching.pairs.append(Pair(item, twin, "structure"))
        unmatched_before.remove(item)
        still_after.remove(twin)

    matching.added = still_after
    matching.removed = unmatched_before
    return matching


def compare_schemas(current: DatabaseSchema, desired: DatabaseSchema) -> SchemaDiff:
    """Semantic diff of *current* (observed) against *desired*.

    Example:
        >>> from db_reconcile.schema.models import Column, Table
        >>> cur = DatabaseSchema(tables=[Table(name="customer", tracking_id="T1",
        ...     columns=[Column(name="email", data_type="text", tracking_id="C1")])])
        >>> new = DatabaseSchema(tables=[Table(name="customers", tracking_id="T1",
        ...     columns=[Column(name="email", data_type="text", tracking_id="C1")])])
        >>> [r.describe() for r in compare_schemas(cur, new).renames]
        ['table customer -> customers']
    """
    return diff_schemas(current, desired, matcher=semantic_matcher)


# ------------------------------------------------------------------
# Tracking ids
# ------------------------------------------------------------------


def _merge_table_ids(target: Table, source: Table) -> None:
    if source.tracking_id:
        target.tracking_id = source.tracking_id
    for attr in ("columns", "indexes", "constraints"):
        ids = {o.name: o.tracking_id for o in getattr(source, attr) if o.tracking_id}
        for obj in getattr(target, attr):
            if obj.name in ids:
                obj.tracking_id = ids[obj.name]


def merge_tracking_ids(target: DatabaseSchema, source: DatabaseSchema) -> DatabaseSchema:
    """Return a copy of *target* carrying *source*'s tracking ids by name.

    Used to give an introspected schema the ids recorded in the snapshot
    before comparing, and to stamp the desired schema's ids onto the
    re-introspected schema after a push.
    """
    merged = target.model_copy(deep=True)
    tables = {t.name: t for t in source.tables}
    for table in merged.tables:
        if table.name in tables:
            _merge_table_ids(table, tables[table.name])
    for kind in (
        "extensions", "enums", "domains", "composite_types", "sequences",
        "functions", "triggers", "views", "materialized_views", "foreign_tables",
    ):
        ids = {identity_key(kind, o): o.tracking_id for o in getattr(source, kind) if o.tracking_id}
        for obj in getattr(merged, kind):
            key = identity_key(kind, obj)
            if key in ids:
                obj.tracking_id = ids[key]
    return merged


# ------------------------------------------------------------------
# Scoping
# ------------------------------------------------------------------


def scope_schemas(
    current: DatabaseSchema,
    desired: DatabaseSchema,
    include_functions: bool = False,
    include_triggers: bool = False,
) -> tuple[DatabaseSchema, DatabaseSchema]:
    """Restrict both schemas to what the desired schema manages.

    Functions and triggers are compared only when enabled and declared in
    the desired schema.  Observed sequences are dropped when the desired
    schema declares none, since serial columns own them implicitly.
    """
    current = current.model_copy()
    desired = desired.model_copy()
    if not (include_functions and desired.functions):
        current.functions, desired.functions = [], []
    if not (include_triggers and desired.triggers):
        current.triggers, desired.triggers = [], []
    if not desired.sequences:
        current.sequences = []
    return current, desired


# ------------------------------------------------------------------
# Destructive changes
# ------------------------------------------------------------------


class DestructiveChange(BaseModel):
    """One diff record that can lose data."""

    kind: str
    name: str
    table: str | None = None
    reason: str

    def describe(self) -> str:
        target = f"{self.table}.{self.name}" if self.table else self.name
        return f"{self.reason} {self.kind} {target}"


def _is_narrowing_change(item: ItemDiff) -> bool:
    if item.action != "modified" or not any(c.field in _TYPE_FIELDS for c in item.changes):
        return False
    return is_narrowing(item.before, item.after)


def classify_destructive(diff: SchemaDiff) -> list[DestructiveChange]:
    """List every destructive record in *diff*.

    Drops of tables, columns, enums, domains, sequences, composite types,
    views, functions and triggers are destructive, as is any column type
    narrowing.
    """
    found: list[DestructiveChange] = []
    for table in diff.tables:
        if table.action == "removed":
            found.append(DestructiveChange(kind="table", name=table.name, reason="drop"))
            continue
        for column in table.columns:
            if column.action == "removed":
                found.append(DestructiveChange(
                    kind="column", name=column.name, table=table.name, reason="drop"
                ))
            elif _is_narrowing_change(column):
                found.append(DestructiveChange(
                    kind="column", name=column.name, table=table.name, reason="narrow"
                ))
    for obj in diff.objects:
        if obj.action == "removed" and obj.kind in DESTRUCTIVE_OBJECT_KINDS:
            found.append(DestructiveChange(kind=obj.kind[:-1], name=obj.name, reason="drop"))
    return found


def _strip_table(table: TableDiff) -> TableDiff:
    columns: list[ItemDiff] = []
    for column in table.columns:
        if column.action == "removed":
            continue
        if _is_narrowing_change(column):
            kept: list[FieldChange] = [c for c in column.changes if c.field not in _TYPE_FIELDS]
            if not kept:
                continue
            after = column.after.model_copy(update={
                f: getattr(column.before, f)
                for f in ("data_type", "length", "precision", "scale", "is_array")
            })
            column = column.model_copy(update={"changes": kept, "after": after})
        columns.append(column)
    return table.model_copy(update={"columns": columns})


def strip_destructive(diff: SchemaDiff) -> SchemaDiff:
    """Return *diff* without its destructive records.

    Narrowing type changes are removed from a column's modifications while
    its other changes (nullability, defaults, ...) are kept.
    """
    tables = []
    for table in diff.tables:
        if table.action == "removed":
            continue
        if table.action == "modified":
            table = _strip_table(table)
            if table.is_empty:
                continue
        tables.append(table)
    objects = [
        o for o in diff.objects
        if not (o.action == "removed" and o.kind in DESTRUCTIVE_OBJECT_KINDS)
    ]
    return SchemaDiff(renames=list(diff.renames), tables=tables, objects=objects)
