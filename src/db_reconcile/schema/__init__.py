"""Canonical schema model and the engine that reconciles it.

Submodules:
    models       - Canonical Schema Model (``DatabaseSchema`` and its parts)
    types        - Type canonicalization and narrowing checks
    normalize    - Normalized form, content hash, material equality
    introspector - Live database introspection (all families)
    diff         - Structural diff and summary
    comparator   - Rename detection, tracking ids, destructive changes
    ddl          - Up/down DDL generation
    validator    - Dialect compatibility checks
    transformer  - PostgreSQL to MySQL/SQLite rewrites
    ignore       - Ignore patterns

Only the model is re-exported here; the engine modules import the dialect
registry, which itself depends on ``schema.types``.

Usage:
    from db_reconcile.schema import Column, DatabaseSchema, Table
    from db_reconcile.schema.comparator import compare_schemas
"""

from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    EnumType,
    Function,
    Index,
    Sequence,
    Table,
    Trigger,
    View,
)

__all__ = [
    "Column",
    "Constraint",
    "DatabaseSchema",
    "EnumType",
    "Function",
    "Index",
    "Sequence",
    "Table",
    "Trigger",
    "View",
]
