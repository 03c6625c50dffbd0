"""db-reconcile: declarative schema reconciliation for SQL databases.

Introspects a live database into a canonical schema model, diffs it
against an authored schema, and generates, validates and applies up/down
DDL for PostgreSQL, MySQL and SQLite families with restore points in a
migration-tracking table.

Usage:
    from db_reconcile import DatabaseSchema, compare_schemas, generate_migration
    from db_reconcile import load_config, resolve_target, Project, Reconciler
"""

__version__ = "0.1.0"

# Adapters
from db_reconcile.adapters import AsyncSQLAlchemyAdapter, DatabaseClient

# Config
from db_reconcile.config import DatabaseProfile, ReconcileConfig, load_config

# Dialects
from db_reconcile.dialects import Dialect, detect_dialect, get_dialect

# Errors
from db_reconcile.errors import ReconcileError

# Executor
from db_reconcile.executor import MigrationExecutor

# Factory
from db_reconcile.factory import ConnectionTarget, create_client, resolve_target, resolve_url

# Workflows
from db_reconcile.reconcile import Project, PushResult, Reconciler

# Schema engine
from db_reconcile.schema.comparator import compare_schemas
from db_reconcile.schema.ddl import generate_migration
from db_reconcile.schema.introspector import introspect_database
from db_reconcile.schema.models import DatabaseSchema
from db_reconcile.schema.validator import validate_sql

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncSQLAlchemyAdapter",
    # Config
    "load_config",
    "DatabaseProfile",
    "ReconcileConfig",
    # Dialects
    "Dialect",
    "detect_dialect",
    "get_dialect",
    # Errors
    "ReconcileError",
    # Executor
    "MigrationExecutor",
    # Factory
    "ConnectionTarget",
    "create_client",
    "resolve_target",
    "resolve_url",
    # Workflows
    "Project",
    "PushResult",
    "Reconciler",
    # Schema
    "DatabaseSchema",
    "compare_schemas",
    "generate_migration",
    "introspect_database",
    "validate_sql",
]
