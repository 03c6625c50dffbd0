"""Apply/rollback executor with migration tracking bookkeeping.

Runs ordered DDL against a ``DatabaseClient`` and records a restore point
(``sql_up`` / ``sql_down``) in the dialect's migration-tracking table.

- Dialects with transactional DDL run the whole batch in one transaction;
  a failure rolls everything back.
- Other dialects run statements one by one; a failure leaves the earlier
  statements applied and the result says so.
- Recording happens after the DDL is committed.  A recording failure is
  a warning on a successful result, never a failure.

Usage:
    from db_reconcile.executor import MigrationExecutor

    executor = MigrationExecutor(client)
    result = await executor.apply(up, down, name="add_users", source="push")
    if not result.success:
        raise result.to_error()

    rollback = await executor.rollback(step=1)
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from db_reconcile.adapters.base import DatabaseClient, Transaction
from db_reconcile.errors import ExecutionError
from db_reconcile.migrations import (
    generate_timestamped_name,
    is_comment_only,
    parse_sections,
    split_statements,
)

logger = logging.getLogger(__name__)

DEFAULT_TRACKING_TABLE = "_reconcile_migrations"

Source = Literal["migrate", "push"]

# Substrings of errors raised by an idempotent tracking-table upgrade
_ALREADY_DONE = ("already exists", "duplicate column", "duplicate_column")


def truncate_statement(statement: str, limit: int = 200) -> str:
    """Collapse whitespace and cut *statement* to *limit* characters."""
    flat = " ".join(statement.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


# ------------------------------------------------------------------
# Result models
# ------------------------------------------------------------------


class ApplyResult(BaseModel):
    """Result of applying a batch of statements.

    Attributes:
        success: True if every statement ran (recording may still warn).
        statements_total: Statements in the batch (comment-only ones excluded).
        statements_applied: Statements that remain applied.
        transactional: Whether the batch ran inside a transaction.
        rolled_back: True if a failure rolled the transaction back.
        failed_statement: Failing statement, truncated to 200 characters.
        failed_index: 1-based index of the failing statement.
        error: Driver error message on failure.
        warnings: Non-fatal problems (bookkeeping, partial apply).
        batch: Batch number of the recorded tracking row.
    """

    success: bool = False
    statements_total: int = 0
    statements_applied: int = 0
    transactional: bool = True
    rolled_back: bool = False
    failed_statement: str | None = None
    failed_index: int | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)
    batch: int | None = None

    def to_error(self) -> ExecutionError:
        """``ExecutionError`` describing the failure."""
        return ExecutionError(
            self.error or "Execution failed",
            statement=self.failed_statement,
            statement_index=self.failed_index,
            rolled_back=self.rolled_back,
            statements_applied=self.statements_applied,
        )


class AppliedMigration(BaseModel):
    """A row of the migration-tracking table."""

    name: str
    filename: str = ""
    hash: str = ""
    batch: int = 0
    sql_up: str | None = None
    sql_down: str | None = None
    source: str = "push"
    applied_at: Any = None


class RollbackPlanItem(BaseModel):
    """One tracking row to reverse, with the SQL that reverses it."""

    name: str
    source: str
    down: str
    batch: int = 0


class RollbackResult(BaseModel):
    """Result of rolling back tracked entries.

    Attributes:
        success: True if every planned entry was reversed.
        plan: Entries selected for rollback, newest first.
        rolled_back: Names of entries reversed and deleted.
        error: Error message for the entry that failed.
        warnings: Entries skipped for lack of DOWN SQL.
    """

    success: bool = False
    plan: list[RollbackPlanItem] = Field(default_factory=list)
    rolled_back: list[str] = Field(default_factory=list)
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------
# Executor
# ------------------------------------------------------------------


class MigrationExecutor:
    """Applies DDL batches and manages the migration-tracking table.

    Args:
        client: Connected ``DatabaseClient``; its dialect picks the
            tracking-table DDL, placeholders and transaction behaviour.
        table_name: Name of the migration-tracking table.
        migrations_dir: Directory holding migration files, used when a
            ``migrate`` row has no stored ``sql_down``.
    """

    def __init__(
        self,
        client: DatabaseClient,
        table_name: str = DEFAULT_TRACKING_TABLE,
        migrations_dir: Path | None = None,
    ):
        self.client = client
        self.dialect = client.dialect
        self.table_name = table_name
        self.migrations_dir = migrations_dir

    @property
    def _table(self) -> str:
        return self.dialect.quote_identifier(self.table_name)

    # ------------------------------------------------------------------
    # Tracking table
    # ------------------------------------------------------------------

    async def ensure_tracking_table(self) -> None:
        """Create the tracking table and bring older layouts up to date.

        Upgrade statements that fail because the column already exists (or
        already has the target type) are ignored.
        """
        await self.client.query(self.dialect.tracking_table_ddl(self.table_name))
        for statement in self.dialect.tracking_table_upgrade_statements(self.table_name):
            try:
                await self.client.query(statement)
            except Exception as e:
                message = str(e).lower()
                if any(marker in message for marker in _ALREADY_DONE):
                    logger.debug("Tracking table upgrade already applied: %s", statement)
                    continue
                logger.warning("Tracking table upgrade failed (%s): %s", statement, e)

    async def next_batch(self) -> int:
        result = await self.client.query(
            f"SELECT COALESCE(MAX(batch), 0) AS batch FROM {self._table}"
        )
        row = result.first() or {}
        return int(row.get("batch") or 0) + 1

    async def record(
        self,
        name: str,
        sql_up: str,
        sql_down: str,
        source: Source,
        filename: str | None = None,
        hash: str | None = None,
        execution_time_ms: int | None = None,
    ) -> int:
        """Insert a tracking row and return its batch number."""
        await self.ensure_tracking_table()
        batch = await self.next_batch()
        p = self.dialect.placeholder
        await self.client.query(
            f"INSERT INTO {self._table} "
            "(name, filename, hash, batch, execution_time_ms, sql_up, sql_down, source) "
            f"VALUES ({p(1)}, {p(2)}, {p(3)}, {p(4)}, {p(5)}, {p(6)}, {p(7)}, {p(8)})",
            [
                name,
                filename or f"{name}.sql",
                hash or name,
                batch,
                execution_time_ms,
                sql_up,
                sql_down,
                source,
            ],
        )
        return batch

    async def list_applied(self) -> list[AppliedMigration]:
        """Tracking rows in application order (oldest first)."""
        await self.ensure_tracking_table()
        order = self.dialect.tracking_order_column
        result = await self.client.query(
            "SELECT name, filename, hash, batch, sql_up, sql_down, source, applied_at "
            f"FROM {self._table} ORDER BY {order}"
        )
        return [AppliedMigration(**row) for row in result.rows]

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    async def _begin(self) -> Transaction | None:
        """Open a transaction, or return None when DDL cannot be transactional."""
        if not self.dialect.transactional_ddl:
            return None
        try:
            return await self.client.begin_transaction()
        except Exception as e:
            if "not supported" not in str(e).lower():
                raise
            logger.warning("Transactions not supported, applying without one: %s", e)
            return None

    async def _abort(self, tx: Transaction, warnings: list[str]) -> None:
        """Roll *tx* back after a failed statement, noting rollback errors."""
        try:
            await tx.rollback()
        except Exception as e:
            logger.warning("Transaction rollback failed: %s", e)
            warnings.append(f"Transaction rollback reported an error: {e}")

    async def execute(self, statements: list[str]) -> ApplyResult:
        """Run *statements* in order without recording anything."""
        statements = [s for s in statements if s.strip() and not is_comment_only(s)]
        result = ApplyResult(statements_total=len(statements))
        tx = await self._begin()
        result.transactional = tx is not None

        for index, statement in enumerate(statements, 1):
            logger.debug("Executing statement %d/%d", index, len(statements))
            try:
                if tx is not None:
                    await tx.query(statement)
                else:
                    await self.client.query(statement)
            except Exception as e:
                result.error = str(e)
                result.failed_statement = truncate_statement(statement)
                result.failed_index = index
                if tx is not None:
                    await self._abort(tx, result.warnings)
                    result.rolled_back = True
                    result.statements_applied = 0
                else:
                    result.statements_applied = index - 1
                    if index > 1:
                        result.warnings.append(
                            f"{index - 1} statement(s) were applied before the failure "
                            f"and cannot be rolled back ({self.dialect.display_name} "
                            "has no transactional DDL)"
                        )
                logger.debug("Statement %d failed: %s", index, e)
                return result
            result.statements_applied = index

        if tx is not None:
            try:
                await tx.commit()
            except Exception as e:
                # A failed COMMIT leaves nothing applied
                result.error = str(e) or type(e).__name__
                result.rolled_back = True
                result.statements_applied = 0
                logger.debug("Commit failed: %s", e)
                return result
        result.success = True
        return result

    async def apply(
        self,
        up: list[str],
        down: list[str],
        name: str,
        source: Source = "push",
        filename: str | None = None,
        hash: str | None = None,
    ) -> ApplyResult:
        """Apply *up* and record a restore point carrying *down*.

        Args:
            up: Forward statements, in execution order.
            down: Reverse statements, stored as ``sql_down``.
            name: Entry name (migration file stem or push restore point).
            source: ``"push"`` or ``"migrate"``.
            filename: Migration filename; defaults to ``<name>.sql``.
            hash: File hash (migrate) or timestamped name (push).

        Returns:
            ``ApplyResult``; bookkeeping failures appear in ``warnings``.

        Example:
            result = await executor.apply(
                ["ALTER TABLE users ADD COLUMN age integer;"],
                ["ALTER TABLE users DROP COLUMN IF EXISTS age;"],
                name="20260101120000_push",
            )
        """
        started = time.monotonic()
        result = await self.execute(up)
        if not result.success:
            return result

        elapsed_ms = int((time.monotonic() - started) * 1000)
        try:
            result.batch = await self.record(
                name,
                sql_up="\n".join(up),
                sql_down="\n".join(down),
                source=source,
                filename=filename,
                hash=hash,
                execution_time_ms=elapsed_ms,
            )
        except Exception as e:
            logger.warning("Migration applied but not recorded: %s", e)
            result.warnings.append(f"Changes applied but not recorded in {self.table_name}: {e}")
        return result

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def _down_from_file(self, entry: AppliedMigration) -> str | None:
        if self.migrations_dir is None:
            return None
        for candidate in (entry.filename, f"{entry.name}.sql", entry.name):
            path = self.migrations_dir / candidate
            if candidate and path.is_file():
                return parse_sections(path.read_text())[1] or None
        return None

    async def plan_rollback(self, step: int = 1, to: str | None = None) -> RollbackResult:
        """Select entries to roll back, newest first.

        Args:
            step: Number of most recent entries to roll back.
            to: Roll back every entry applied after the first (newest-first)
                entry whose name contains *to*; that entry stays applied.

        Returns:
            ``RollbackResult`` with ``plan`` filled in and nothing executed.
        """
        applied = list(reversed(await self.list_applied()))
        result = RollbackResult()
        if to is not None:
            target = next((i for i, e in enumerate(applied) if to in e.name), None)
            if target is None:
                result.error = f"Entry not found in applied list: {to}"
                return result
            selected = applied[:target]
        else:
            selected = applied[:max(step, 0)]

        for entry in selected:
            down = entry.sql_down or self._down_from_file(entry)
            if not down or not down.strip():
                result.warnings.append(f"No DOWN SQL for {entry.name}; skipped")
                continue
            result.plan.append(RollbackPlanItem(
                name=entry.name, source=entry.source, down=down, batch=entry.batch
            ))
        result.success = True
        return result

    async def rollback(
        self, step: int = 1, to: str | None = None, dry_run: bool = False
    ) -> RollbackResult:
        """Reverse the most recent entries and delete their tracking rows.

        Each entry runs in its own transaction where the dialect allows:
        its DOWN statements followed by the ``DELETE`` of its row.  The
        first failure stops the rollback.
        """
        result = await self.plan_rollback(step, to)
        if not result.success or dry_run:
            return result

        p = self.dialect.placeholder
        # Push restore points made within the same second share a name
        delete_sql = f"DELETE FROM {self._table} WHERE name = {p(1)} AND batch = {p(2)}"
        for item in result.plan:
            tx = await self._begin()
            run = tx.query if tx is not None else self.client.query
            statements = [s for s in split_statements(item.down) if not is_comment_only(s)]
            try:
                for statement in statements:
                    await run(statement)
                await run(delete_sql, [item.name, item.batch])
            except Exception as e:
                if tx is not None:
                    await self._abort(tx, result.warnings)
                result.success = False
                result.error = f"Rollback of {item.name} failed: {e}"
                logger.debug("Rollback of %s failed", item.name, exc_info=True)
                return result
            if tx is not None:
                try:
                    await tx.commit()
                except Exception as e:
                    result.success = False
                    result.error = f"Rollback of {item.name} failed at commit: {e}"
                    logger.debug("Commit of rollback %s failed", item.name, exc_info=True)
                    return result
            result.rolled_back.append(item.name)
            logger.info("Rolled back %s", item.name)
        return result


def restore_point_name(label: str = "push", now: datetime | None = None) -> str:
    """Timestamped ``YYYYMMDDHHMMSS_<label>`` name for a push restore point."""
    return generate_timestamped_name(label, now)
