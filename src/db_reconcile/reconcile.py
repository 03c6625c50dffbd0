"""Push, pull and diff workflows.

``Reconciler`` ties the engine together for one command against one
database:

    Idle -> Connecting -> Introspecting -> Diffing -> Validating
         -> [Confirming] -> Applying -> Recording -> Done

with ``Failed`` reachable from every state after ``Idle``.  Blocking
conditions (invalid schema, dialect incompatibilities, unconfirmed
destructive changes) raise the matching ``ReconcileError``; the outcome of
an apply is returned as a ``PushResult``.

Usage:
    project = Project.from_config(load_config())
    target = resolve_target(config)
    async with Reconciler(project, target) as reconciler:
        result = await reconciler.push(confirm=ask_user)
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from db_reconcile.adapters import DatabaseClient
from db_reconcile.config.models import ReconcileConfig
from db_reconcile.errors import DestructiveChangeError, ReconcileError
from db_reconcile.executor import (
    AppliedMigration,
    ApplyResult,
    MigrationExecutor,
    RollbackResult,
    restore_point_name,
)
from db_reconcile.factory import ConnectionTarget, create_client
from db_reconcile.migrations import (
    MigrationFile,
    is_comment_only,
    list_migration_files,
    next_migration_filename,
    render_migration,
    split_statements,
)
from db_reconcile.schema.comparator import (
    DestructiveChange,
    classify_destructive,
    compare_schemas,
    merge_tracking_ids,
    scope_schemas,
    strip_destructive,
)
from db_reconcile.schema.ddl import MigrationSQL, generate_migration
from db_reconcile.schema.diff import SchemaDiff, format_summary
from db_reconcile.schema.ignore import (
    IgnoreRules,
    filter_schema,
    load_ignore_file,
    validate_ignore_dependencies,
)
from db_reconcile.schema.introspector import ProgressCallback, introspect_database, project_schema
from db_reconcile.schema.models import SCHEMA_OBJECT_KINDS, DatabaseSchema
from db_reconcile.schema.normalize import schema_hash
from db_reconcile.schema.transformer import transform_sql
from db_reconcile.schema.validator import (
    DialectValidationResult,
    validate_schema_for_dialect,
    validate_statements,
)
from db_reconcile.snapshot import SnapshotStore, file_hash
from db_reconcile.source import load_schema_source, write_schema_source

logger = logging.getLogger(__name__)

State = Literal[
    "idle", "connecting", "introspecting", "diffing", "validating",
    "confirming", "applying", "recording", "done", "failed",
]

ConfirmCallback = Callable[[list[DestructiveChange]], bool]


# ============================================================================
# Project Layout
# ============================================================================


@dataclass(frozen=True)
class Project:
    """Filesystem layout and comparison settings of a managed repository."""

    root: Path
    source: Path
    migrations_dir: Path
    state_dir: Path
    ignore_file: Path
    tracking_table: str = "_reconcile_migrations"
    naming: str = "sequential"
    include_functions: bool = False
    include_triggers: bool = False
    include_views: bool = False

    @classmethod
    def from_config(cls, config: ReconcileConfig) -> "Project":
        root = Path(config.root)
        return cls(
            root=root,
            source=root / config.schema_settings.file,
            migrations_dir=root / config.migrations.directory,
            state_dir=root / config.state.directory,
            ignore_file=root / config.state.ignore_file,
            tracking_table=config.migrations.table_name,
            naming=config.migrations.naming,
            include_functions=config.schema_settings.include_functions,
            include_triggers=config.schema_settings.include_triggers,
            include_views=config.schema_settings.include_views,
        )


# ============================================================================
# Result Models
# ============================================================================


class DiffReport(BaseModel):
    """Desired vs. observed comparison, with the DDL that would reconcile it."""

    diff: SchemaDiff
    summary: list[str] = Field(default_factory=list)
    migration: MigrationSQL = Field(default_factory=MigrationSQL)
    destructive: list[DestructiveChange] = Field(default_factory=list)
    validation: DialectValidationResult | None = None

    @property
    def has_changes(self) -> bool:
        return not self.diff.is_empty


class PushResult(BaseModel):
    """Result of push()."""

    success: bool = False
    state: State = "idle"
    dry_run: bool = False
    no_changes: bool = False
    summary: list[str] = Field(default_factory=list)
    up: list[str] = Field(default_factory=list)
    down: list[str] = Field(default_factory=list)
    destructive: list[str] = Field(default_factory=list)
    stripped_destructive: bool = False
    restore_point: str | None = None
    apply: ApplyResult | None = None
    validation: DialectValidationResult | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None


class MigrateResult(BaseModel):
    """Result of migrate()."""

    success: bool = True
    pending: list[str] = Field(default_factory=list)
    applied: list[str] = Field(default_factory=list)
    failed: str | None = None
    apply: ApplyResult | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None


class SyncResult(BaseModel):
    """Result of sync().

    Attributes:
        pulled: The authoring source was rewritten from the database.
        pull_skipped: Local edits were kept instead of pulling.
        push: Result of the push step, when one ran.
    """

    success: bool = False
    pulled: bool = False
    pull_skipped: bool = False
    push: PushResult | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None


class StatusReport(BaseModel):
    """Result of status()."""

    applied: list[AppliedMigration] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    snapshot_exists: bool = False
    source_changed: bool | None = None
    database_changed: bool | None = None


# ============================================================================
# Helpers
# ============================================================================


def new_tracking_id() -> str:
    return uuid.uuid4().hex[:12]


def assign_tracking_ids(schema: DatabaseSchema) -> DatabaseSchema:
    """Return a copy of *schema* where every entity has a tracking id.

    Existing ids are kept; only missing ones are generated.
    """
    assigned = schema.model_copy(deep=True)
    for table in assigned.tables:
        table.tracking_id = table.tracking_id or new_tracking_id()
        for child in (*table.columns, *table.indexes, *table.constraints):
            child.tracking_id = child.tracking_id or new_tracking_id()
    for kind in SCHEMA_OBJECT_KINDS:
        if kind == "tables":
            continue
        for obj in getattr(assigned, kind):
            if hasattr(obj, "tracking_id"):
                obj.tracking_id = obj.tracking_id or new_tracking_id()
    return assigned


def scope_views(
    current: DatabaseSchema, desired: DatabaseSchema, include_views: bool
) -> tuple[DatabaseSchema, DatabaseSchema]:
    """Drop views from both sides unless view management is enabled."""
    if include_views:
        return current, desired
    current = current.model_copy(update={"views": [], "materialized_views": []})
    desired = desired.model_copy(update={"views": [], "materialized_views": []})
    return current, desired


def combine_validation(
    schema_result: DialectValidationResult, sql_result: DialectValidationResult
) -> DialectValidationResult:
    """Merge schema-level and SQL-level validation.

    Schema issues already reported for the generated SQL (same category
    and feature) are left out so each incompatibility is listed once.
    """
    combined = sql_result.model_copy(deep=True)
    seen = {(i.category, i.feature) for i in sql_result.errors + sql_result.warnings}
    for issue in schema_result.errors:
        if (issue.category, issue.feature) not in seen:
            combined.add(issue)
    for issue in schema_result.warnings:
        if (issue.category, issue.feature) not in seen:
            combined.add(issue, is_warning=True)
    return combined


def executable_statements(statements: list[str]) -> list[str]:
    return [s for s in statements if s.strip() and not is_comment_only(s)]


# ============================================================================
# Reconciler
# ============================================================================


class Reconciler:
    """Runs the reconciliation workflows for one project and database.

    Args:
        project: Repository layout and settings.
        target: Resolved connection profile.
        client: Existing client; when omitted one is opened on ``__aenter__``
            and closed on exit.
        on_progress: Introspection progress callback.
    """

    def __init__(
        self,
        project: Project,
        target: ConnectionTarget,
        client: DatabaseClient | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.project = project
        self.target = target
        self.dialect = target.dialect
        self.client = client
        self.on_progress = on_progress
        self.store = SnapshotStore(project.state_dir)
        self.state: State = "idle"
        self.history: list[State] = ["idle"]
        self._owns_client = client is None

    async def __aenter__(self) -> "Reconciler":
        if self.client is None:
            self._enter("connecting")
            try:
                self.client = await create_client(self.target)
            except ReconcileError:
                self._enter("failed")
                raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.client is not None and self._owns_client:
            await self.client.close()
            self.client = None

    def _enter(self, state: State) -> None:
        logger.debug("Reconcile state: %s -> %s", self.state, state)
        self.state = state
        self.history.append(state)

    @property
    def executor(self) -> MigrationExecutor:
        if self.client is None:
            raise RuntimeError("Reconciler is not connected; use 'async with'")
        return MigrationExecutor(
            self.client, self.project.tracking_table, self.project.migrations_dir
        )

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def ignore_rules(self) -> IgnoreRules:
        return load_ignore_file(self.project.ignore_file)

    def load_desired(self, rules: IgnoreRules | None = None) -> DatabaseSchema:
        """Authored schema, checked and with ignored objects removed.

        Raises:
            SchemaInvariantError: If the schema violates an invariant.
            IgnoreDependencyError: If an ignored type is still referenced.
        """
        rules = rules or self.ignore_rules()
        desired = load_schema_source(self.project.source)
        desired.check_invariants()
        validate_ignore_dependencies(desired, rules)
        return filter_schema(desired, rules)

    async def introspect(
        self,
        rules: IgnoreRules | None = None,
        include_views: bool | None = None,
    ) -> DatabaseSchema:
        """Observed schema with ignored objects removed."""
        schema = await introspect_database(
            self.target.url,
            self.dialect,
            include_functions=self.project.include_functions,
            include_triggers=self.project.include_triggers,
            include_views=self.project.include_views if include_views is None else include_views,
            on_progress=self.on_progress,
            client=self.client,
            connect_timeout=self.target.connect_timeout,
            excluded_tables={self.project.tracking_table},
        )
        return filter_schema(schema, rules or self.ignore_rules())

    async def _observed_with_ids(self, rules: IgnoreRules) -> DatabaseSchema:
        current = await self.introspect(rules)
        snapshot = self.store.load_schema()
        if snapshot is not None:
            current = merge_tracking_ids(current, snapshot)
        return current

    def plan(self, current: DatabaseSchema, desired: DatabaseSchema, transform: bool = False) -> DiffReport:
        """Diff, generate and validate without touching the database."""
        projected = project_schema(desired, self.dialect)
        current, projected = scope_schemas(
            current,
            projected,
            include_functions=self.project.include_functions,
            include_triggers=self.project.include_triggers,
        )
        current, projected = scope_views(current, projected, self.project.include_views)

        diff = compare_schemas(current, projected)
        migration = generate_migration(diff, self.dialect, current, projected)
        validation = self._validate(projected, migration, transform)
        if transform and validation.transformed_sql is not None:
            migration = migration.model_copy(
                update={"up": executable_statements(split_statements(validation.transformed_sql))}
            )
        return DiffReport(
            diff=diff,
            summary=format_summary(diff),
            migration=migration,
            destructive=classify_destructive(diff),
            validation=validation,
        )

    def _validate(
        self, desired: DatabaseSchema, migration: MigrationSQL, transform: bool
    ) -> DialectValidationResult:
        schema_result = validate_schema_for_dialect(desired, self.dialect)
        sql_result = validate_statements(
            executable_statements(migration.up), self.dialect, transform=transform
        )
        return combine_validation(schema_result, sql_result)

    async def _refresh_snapshot(self, rules: IgnoreRules, ids_from: DatabaseSchema | None) -> list[str]:
        """Re-introspect and save the snapshot; failures become warnings."""
        try:
            observed = await self.introspect(rules)
            previous = self.store.load_schema()
            if previous is not None:
                observed = merge_tracking_ids(observed, previous)
            if ids_from is not None:
                observed = merge_tracking_ids(observed, ids_from)
            self.store.save(
                observed,
                source_hash=file_hash(self.project.source),
                dialect=self.dialect.name,
            )
        except Exception as e:
            logger.warning("Snapshot not updated: %s", e)
            return [f"Changes applied but snapshot not updated: {e}"]
        return []

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def diff(self, transform: bool = False) -> DiffReport:
        """Compare the authored schema with the database."""
        rules = self.ignore_rules()
        desired = self.load_desired(rules)
        current = await self._observed_with_ids(rules)
        return self.plan(current, desired, transform)

    async def push(
        self,
        dry_run: bool = False,
        force: bool = False,
        transform: bool = False,
        confirm: ConfirmCallback | None = None,
    ) -> PushResult:
        """Reconcile the database with the authored schema.

        Args:
            dry_run: Plan and validate only.
            force: Apply destructive changes without asking.
            transform: Rewrite generated SQL for the target dialect.
            confirm: Asked once with the destructive changes; returning
                False strips them and applies the rest.

        Returns:
            PushResult with the applied statements and restore point.

        Raises:
            SchemaInvariantError: Authored schema is invalid.
            IgnoreDependencyError: Ignored type still referenced.
            DialectIncompatibilityError: DDL cannot run on the target.
            DestructiveChangeError: Destructive changes, no ``force`` and
                no ``confirm`` callback.
        """
        result = PushResult(dry_run=dry_run)
        try:
            return await self._push(result, dry_run, force, transform, confirm)
        except ReconcileError:
            self._enter("failed")
            raise

    async def _push(
        self,
        result: PushResult,
        dry_run: bool,
        force: bool,
        transform: bool,
        confirm: ConfirmCallback | None,
    ) -> PushResult:
        rules = self.ignore_rules()
        desired = self.load_desired(rules)

        self._enter("introspecting")
        current = await self._observed_with_ids(rules)

        self._enter("diffing")
        report = self.plan(current, desired, transform)
        result.summary = report.summary
        result.validation = report.validation
        result.destructive = [c.describe() for c in report.destructive]
        result.warnings.extend(report.migration.warnings)
        if report.validation is not None:
            result.warnings.extend(w.describe() for w in report.validation.warnings)

        if not report.has_changes:
            result.no_changes = result.success = True
            self._enter("done")
            result.state = self.state
            return result

        self._enter("validating")
        report.validation.raise_for_errors()

        if report.destructive and not force and not dry_run:
            if confirm is None:
                raise DestructiveChangeError(result.destructive)
            self._enter("confirming")
            if not confirm(report.destructive):
                logger.info("Destructive changes declined; applying the rest")
                report = self._strip(current, desired, report, transform)
                result.stripped_destructive = True
                result.summary = report.summary
                result.warnings.extend(f"Skipped: {d}" for d in result.destructive)
                if not report.has_changes:
                    result.error = "Destructive changes declined; nothing applied"
                    self._enter("failed")
                    result.state = self.state
                    return result

        result.up = executable_statements(report.migration.up)
        result.down = executable_statements(report.migration.down)
        if dry_run:
            result.success = True
            self._enter("done")
            result.state = self.state
            return result

        self._enter("applying")
        name = restore_point_name("push")
        apply_result = await self.executor.apply(
            result.up, result.down, name=name, source="push", hash=name
        )
        result.apply = apply_result
        result.warnings.extend(apply_result.warnings)
        if not apply_result.success:
            result.error = apply_result.to_error().format_report()
            self._enter("failed")
            result.state = self.state
            return result

        self._enter("recording")
        result.restore_point = name
        result.warnings.extend(await self._refresh_snapshot(rules, desired))
        result.success = True
        self._enter("done")
        result.state = self.state
        return result

    def _strip(
        self,
        current: DatabaseSchema,
        desired: DatabaseSchema,
        report: DiffReport,
        transform: bool,
    ) -> DiffReport:
        diff = strip_destructive(report.diff)
        projected = project_schema(desired, self.dialect)
        migration = generate_migration(diff, self.dialect, current, projected)
        validation = self._validate(projected, migration, transform)
        validation.raise_for_errors()
        if transform and validation.transformed_sql is not None:
            migration = migration.model_copy(
                update={"up": executable_statements(split_statements(validation.transformed_sql))}
            )
        return DiffReport(
            diff=diff,
            summary=format_summary(diff),
            migration=migration,
            validation=validation,
        )

    async def pull(self, output: Path | None = None) -> DatabaseSchema:
        """Introspect, keep known tracking ids, write the source and snapshot.

        Tracking ids come from the snapshot, then from an existing JSON
        source; entities without one get a fresh id.
        """
        rules = self.ignore_rules()
        self._enter("introspecting")
        observed = await self.introspect(rules)
        snapshot = self.store.load_schema()
        if snapshot is not None:
            observed = merge_tracking_ids(observed, snapshot)
        target = output or self.project.source
        if target.suffix == ".json" and target.exists():
            observed = merge_tracking_ids(observed, load_schema_source(target))
        observed = assign_tracking_ids(observed)

        write_schema_source(observed, target)
        self.store.save(observed, source_hash=file_hash(target), dialect=self.dialect.name)
        self._enter("done")
        return observed

    async def sync(
        self,
        pull_only: bool = False,
        push_only: bool = False,
        force: bool = False,
        confirm: ConfirmCallback | None = None,
    ) -> SyncResult:
        """Pull remote changes, then push local ones.

        Pulling rewrites the authoring source, so it is skipped while the
        source holds edits made since the last snapshot; *force* pulls
        anyway and discards them.

        Args:
            pull_only: Stop after the pull.
            push_only: Skip the pull.
            force: Overwrite local edits on pull and apply destructive
                changes on push without asking.
            confirm: Passed to push() for destructive changes.

        Raises:
            ValueError: If both *pull_only* and *push_only* are set.
        """
        if pull_only and push_only:
            raise ValueError("pull_only and push_only are mutually exclusive")
        result = SyncResult()
        if not push_only:
            edited = self.project.source.exists() and self.store.is_source_changed(
                self.project.source
            ) is not False
            if edited and not force:
                result.pull_skipped = True
                result.warnings.append(
                    f"{self.project.source.name} has local changes; pull skipped "
                    "(use force to overwrite them)"
                )
            else:
                await self.pull()
                result.pulled = True
        if pull_only:
            result.success = True
            return result

        result.push = await self.push(force=force, confirm=confirm)
        result.success = result.push.success
        result.error = result.push.error
        result.warnings.extend(result.push.warnings)
        return result

    async def export(self, output: Path) -> DatabaseSchema:
        """Write the observed schema to *output* without touching the snapshot."""
        observed = await self.introspect(self.ignore_rules())
        write_schema_source(observed, output)
        return observed

    def validate(self, transform: bool = False) -> DiffReport:
        """Validate the authored schema and its full creation DDL offline."""
        desired = self.load_desired()
        return self.plan(DatabaseSchema(), desired, transform)

    async def generate(self, name: str, transform: bool = False) -> Path | None:
        """Write a migration file from the current diff.

        Returns:
            Path of the new file, or None when there is nothing to write.
        """
        report = await self.diff(transform)
        if not report.has_changes:
            return None
        report.validation.raise_for_errors()
        directory = self.project.migrations_dir
        path = directory / next_migration_filename(directory, name, naming=self.project.naming)
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(render_migration(path.stem, report.migration.up, report.migration.down))
        logger.info("Wrote migration %s", path)
        return path

    async def pending_migrations(self) -> list[MigrationFile]:
        applied = await self.executor.list_applied()
        done = {m.filename for m in applied} | {m.name for m in applied}
        return [
            f for f in list_migration_files(self.project.migrations_dir)
            if f.filename not in done and f.name not in done
        ]

    async def migrate(self, dry_run: bool = False, transform: bool = False) -> MigrateResult:
        """Apply pending migration files in order, stopping at the first failure.

        Raises:
            DialectIncompatibilityError: A pending file cannot run on the
                target; nothing after the already applied files runs.
        """
        result = MigrateResult()
        pending = await self.pending_migrations()
        result.pending = [f.filename for f in pending]
        if dry_run or not pending:
            return result

        executor = self.executor
        for migration in pending:
            up_sql = migration.up
            if transform:
                up_sql = transform_sql(up_sql, self.dialect).sql
            up = executable_statements(split_statements(up_sql))
            validate_statements(up, self.dialect).raise_for_errors()

            self._enter("applying")
            apply_result = await executor.apply(
                up,
                executable_statements(split_statements(migration.down)),
                name=migration.name,
                source="migrate",
                filename=migration.filename,
                hash=migration.hash,
            )
            result.warnings.extend(apply_result.warnings)
            if not apply_result.success:
                result.success = False
                result.failed = migration.filename
                result.apply = apply_result
                result.error = apply_result.to_error().format_report()
                self._enter("failed")
                return result
            result.applied.append(migration.filename)

        self._enter("recording")
        result.warnings.extend(await self._refresh_snapshot(self.ignore_rules(), None))
        self._enter("done")
        return result

    async def rollback(
        self,
        step: int = 1,
        to: str | None = None,
        dry_run: bool = False,
        confirm: Callable[[RollbackResult], bool] | None = None,
    ) -> RollbackResult:
        """Roll back recent pushes and migrations.

        *confirm* sees the plan first; declining leaves everything as is.
        """
        executor = self.executor
        plan = await executor.plan_rollback(step, to)
        if not plan.success or dry_run or not plan.plan:
            return plan
        if confirm is not None and not confirm(plan):
            plan.success = False
            plan.error = "Rollback cancelled"
            return plan

        result = await executor.rollback(step, to)
        if result.rolled_back:
            result.warnings.extend(await self._refresh_snapshot(self.ignore_rules(), None))
        return result

    async def status(self) -> StatusReport:
        """Applied entries, pending files and snapshot freshness.

        ``database_changed`` compares the normalized fingerprint of the
        live schema with the one saved in the snapshot, so changes made
        outside this tool show up; comments and tracking ids are ignored.
        """
        applied = await self.executor.list_applied()
        pending = await self.pending_migrations()
        report = StatusReport(
            applied=applied,
            pending=[f.filename for f in pending],
            snapshot_exists=self.store.exists(),
            source_changed=self.store.is_source_changed(self.project.source),
        )
        snapshot = self.store.load()
        if snapshot is not None and snapshot.schema_hash is not None:
            observed = await self.introspect(self.ignore_rules())
            report.database_changed = schema_hash(observed) != snapshot.schema_hash
        return report


def import_schema(project: Project, path: Path) -> DatabaseSchema:
    """Replace the authoring source with the schema document at *path*."""
    schema = load_schema_source(path)
    schema.check_invariants()
    write_schema_source(schema, project.source)
    return schema
