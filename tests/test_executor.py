"""Tests for the apply/rollback executor against an in-memory fake client."""

from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from db_reconcile.adapters.base import QueryResult
from db_reconcile.dialects import get_dialect
from db_reconcile.errors import ExecutionError
from db_reconcile.executor import (
    MigrationExecutor,
    restore_point_name,
    truncate_statement,
)


# ============================================================================
# Fake client
# ============================================================================


class FakeClient:
    """Records every statement and keeps tracking rows in memory.

    Statements containing ``fail_on`` raise ``RuntimeError``.
    """

    def __init__(self, dialect: str = "postgres", fail_on: str | None = None):
        self.dialect = get_dialect(dialect)
        self.fail_on = fail_on
        self.executed: list[str] = []
        self.params: list[list[Any] | None] = []
        self.rows: list[dict[str, Any]] = []
        self.tx = MagicMock()
        self.tx.query = AsyncMock(side_effect=self._run)
        self.tx.commit = AsyncMock()
        self.tx.rollback = AsyncMock()
        self.query = AsyncMock(side_effect=self._run)
        self.begin_transaction = AsyncMock(return_value=self.tx)

    async def _run(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        self.executed.append(sql)
        self.params.append(params)
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError(f"boom: {self.fail_on}")
        if sql.startswith("SELECT COALESCE(MAX(batch)"):
            top = max((r["batch"] for r in self.rows), default=0)
            return QueryResult(rows=[{"batch": top}], row_count=1)
        if sql.startswith("SELECT name, filename"):
            return QueryResult(rows=[dict(r) for r in self.rows], row_count=len(self.rows))
        if sql.startswith("INSERT INTO"):
            keys = ["name", "filename", "hash", "batch", "execution_time_ms", "sql_up", "sql_down", "source"]
            row = dict(zip(keys, params))
            row.pop("execution_time_ms")
            row["applied_at"] = None
            self.rows.append(row)
        if sql.startswith("DELETE FROM"):
            self.rows = [r for r in self.rows if (r["name"], r["batch"]) != (params[0], params[1])]
        return QueryResult()


def _row(name: str, down: str | None, source: str = "migrate", batch: int = 1) -> dict[str, Any]:
    return {
        "name": name,
        "filename": f"{name}.sql",
        "hash": name,
        "batch": batch,
        "sql_up": "SELECT 1;",
        "sql_down": down,
        "source": source,
        "applied_at": None,
    }


# ============================================================================
# Apply
# ============================================================================


class TestApply:
    """Applying batches and recording restore points."""

    async def test_transactional_success(self) -> None:
        """The batch runs in a transaction and is recorded afterwards."""
        client = FakeClient()
        executor = MigrationExecutor(client)

        result = await executor.apply(
            ["CREATE TABLE a (id integer);", "CREATE TABLE b (id integer);"],
            ["DROP TABLE IF EXISTS b CASCADE;", "DROP TABLE IF EXISTS a CASCADE;"],
            name="20260101120000_push",
        )

        assert result.success is True
        assert result.transactional is True
        assert (result.statements_total, result.statements_applied) == (2, 2)
        assert result.batch == 1
        assert [c.args[0] for c in client.tx.query.await_args_list] == [
            "CREATE TABLE a (id integer);", "CREATE TABLE b (id integer);",
        ]
        client.tx.commit.assert_awaited_once()
        [row] = client.rows
        assert row["name"] == "20260101120000_push"
        assert row["filename"] == "20260101120000_push.sql"
        assert row["source"] == "push"
        assert row["sql_up"] == "CREATE TABLE a (id integer);\nCREATE TABLE b (id integer);"
        assert row["sql_down"] == "DROP TABLE IF EXISTS b CASCADE;\nDROP TABLE IF EXISTS a CASCADE;"

    async def test_tracking_insert_placeholders(self) -> None:
        """The insert uses eight dialect placeholders."""
        client = FakeClient()
        await MigrationExecutor(client).apply(["SELECT 1;"], [], name="x")

        [insert] = [s for s in client.executed if s.startswith("INSERT INTO")]
        assert "VALUES ($1, $2, $3, $4, $5, $6, $7, $8)" in insert
        params = client.params[client.executed.index(insert)]
        assert len(params) == 8
        assert isinstance(params[4], int)

    async def test_mysql_placeholders(self) -> None:
        """MySQL uses question marks."""
        client = FakeClient("mysql")
        await MigrationExecutor(client).apply(["SELECT 1;"], [], name="x")
        [insert] = [s for s in client.executed if s.startswith("INSERT INTO")]
        assert "VALUES (?, ?, ?, ?, ?, ?, ?, ?)" in insert

    async def test_batches_increase(self) -> None:
        """Each apply gets the next batch number."""
        client = FakeClient()
        executor = MigrationExecutor(client)
        first = await executor.apply(["SELECT 1;"], [], name="one")
        second = await executor.apply(["SELECT 2;"], [], name="two")
        assert (first.batch, second.batch) == (1, 2)

    async def test_comment_only_statements_skipped(self) -> None:
        """Warnings emitted as comments are not executed."""
        client = FakeClient()
        result = await MigrationExecutor(client).execute(["-- note: nothing to do", "SELECT 1;", "  "])
        assert result.statements_total == 1
        assert client.tx.query.await_count == 1

    async def test_transaction_rolled_back(self) -> None:
        """A failure inside a transaction rolls the batch back."""
        client = FakeClient(fail_on="BAD")
        result = await MigrationExecutor(client).apply(
            ["CREATE TABLE a (id integer);", "CREATE BAD;", "CREATE TABLE c (id integer);"],
            [],
            name="x",
        )

        assert result.success is False
        assert result.rolled_back is True
        assert result.statements_applied == 0
        assert (result.failed_index, result.failed_statement) == (2, "CREATE BAD;")
        assert result.error == "boom: BAD"
        client.tx.rollback.assert_awaited_once()
        client.tx.commit.assert_not_awaited()
        assert client.rows == []

    async def test_commit_failure(self) -> None:
        """A failing COMMIT is reported, not raised, and nothing is recorded."""
        client = FakeClient()
        client.tx.commit.side_effect = RuntimeError("deferred FK violated at COMMIT")
        result = await MigrationExecutor(client).apply(
            ["CREATE TABLE a (id integer);", "CREATE TABLE b (a_id integer);"], [], name="x"
        )

        assert result.success is False
        assert result.rolled_back is True
        assert result.statements_applied == 0
        assert result.failed_index is None
        assert result.error == "deferred FK violated at COMMIT"
        assert client.rows == []
        assert "All changes rolled back." in result.to_error().format_report()

    async def test_rollback_error_is_warning(self) -> None:
        """A failing ROLLBACK keeps the statement error and adds a warning."""
        client = FakeClient(fail_on="BAD")
        client.tx.rollback.side_effect = RuntimeError("connection reset")
        result = await MigrationExecutor(client).execute(["SELECT 1;", "BAD;"])

        assert result.success is False
        assert result.error == "boom: BAD"
        assert result.warnings == ["Transaction rollback reported an error: connection reset"]

    async def test_error_conversion(self) -> None:
        """Failures convert into ExecutionError."""
        client = FakeClient(fail_on="BAD")
        result = await MigrationExecutor(client).execute(["SELECT 1;", "BAD;"])
        error = result.to_error()
        assert isinstance(error, ExecutionError)
        assert error.rolled_back is True
        assert error.statement_index == 2
        assert "All changes rolled back." in error.format_report()

    async def test_non_transactional_partial(self) -> None:
        """Without transactional DDL earlier statements stay applied."""
        client = FakeClient("mysql", fail_on="BAD")
        result = await MigrationExecutor(client).apply(
            ["CREATE TABLE a (id int);", "CREATE TABLE b (id int);", "BAD;"], [], name="x"
        )

        assert result.success is False
        assert result.transactional is False
        assert result.rolled_back is False
        assert result.statements_applied == 2
        assert result.warnings == [
            "2 statement(s) were applied before the failure and cannot be rolled back "
            "(MySQL has no transactional DDL)"
        ]
        client.begin_transaction.assert_not_awaited()

    async def test_non_transactional_first_statement(self) -> None:
        """A failing first statement leaves nothing applied and no warning."""
        client = FakeClient("mysql", fail_on="BAD")
        result = await MigrationExecutor(client).execute(["BAD;"])
        assert result.statements_applied == 0
        assert result.warnings == []

    async def test_recording_failure_is_warning(self) -> None:
        """Applied changes stay successful when bookkeeping fails."""
        client = FakeClient(fail_on="INSERT INTO")
        result = await MigrationExecutor(client).apply(["SELECT 1;"], [], name="x")

        assert result.success is True
        assert result.batch is None
        assert result.warnings == [
            "Changes applied but not recorded in _reconcile_migrations: boom: INSERT INTO"
        ]

    async def test_transactions_not_supported(self) -> None:
        """A driver without transactions falls back to direct execution."""
        client = FakeClient()
        client.begin_transaction.side_effect = RuntimeError("Transactions not supported")
        result = await MigrationExecutor(client).execute(["SELECT 1;"])
        assert result.success is True
        assert result.transactional is False

    async def test_begin_failure_propagates(self) -> None:
        """Other errors opening a transaction are raised."""
        client = FakeClient()
        client.begin_transaction.side_effect = RuntimeError("connection lost")
        with pytest.raises(RuntimeError, match="connection lost"):
            await MigrationExecutor(client).execute(["SELECT 1;"])


class TestTrackingTable:
    """Tracking table creation and upgrades."""

    async def test_upgrade_already_applied(self) -> None:
        """Upgrades failing with 'already exists' are ignored."""
        client = FakeClient()

        async def _run(sql: str, params: list[Any] | None = None) -> QueryResult:
            if "ADD COLUMN" in sql:
                raise RuntimeError('column "sql_up" of relation already exists')
            return QueryResult()

        client.query.side_effect = _run
        await MigrationExecutor(client).ensure_tracking_table()
        assert client.query.await_count == 5

    async def test_custom_table_name(self) -> None:
        """The table name is configurable and quoted when needed."""
        client = FakeClient()
        await MigrationExecutor(client, table_name="schema_history").ensure_tracking_table()
        assert client.executed[0].startswith("CREATE TABLE IF NOT EXISTS schema_history (")


# ============================================================================
# Rollback
# ============================================================================


class TestRollback:
    """Reversing tracked entries."""

    async def test_step(self) -> None:
        """step=1 reverses the newest entry in a transaction."""
        client = FakeClient()
        client.rows = [
            _row("001_init", "DROP TABLE a;"),
            _row("20260101120000_push", "DROP TABLE c;\nDROP TABLE b;", source="push", batch=2),
        ]

        result = await MigrationExecutor(client).rollback(step=1)

        assert result.success is True
        assert result.rolled_back == ["20260101120000_push"]
        assert [c.args[0] for c in client.tx.query.await_args_list] == [
            "DROP TABLE c;",
            "DROP TABLE b;",
            "DELETE FROM _reconcile_migrations WHERE name = $1 AND batch = $2",
        ]
        client.tx.commit.assert_awaited_once()
        assert [r["name"] for r in client.rows] == ["001_init"]

    async def test_to(self) -> None:
        """to= reverses everything newer than the named entry."""
        client = FakeClient()
        client.rows = [_row("001_init", "A;"), _row("002_b", "B;"), _row("003_c", "C;")]

        result = await MigrationExecutor(client).rollback(to="001")

        assert result.rolled_back == ["003_c", "002_b"]
        assert [r["name"] for r in client.rows] == ["001_init"]

    async def test_to_unknown(self) -> None:
        """An unknown target fails without executing anything."""
        client = FakeClient()
        client.rows = [_row("001_init", "A;")]
        result = await MigrationExecutor(client).rollback(to="nope")
        assert result.success is False
        assert result.error == "Entry not found in applied list: nope"
        client.begin_transaction.assert_not_awaited()

    async def test_dry_run(self) -> None:
        """dry_run only plans."""
        client = FakeClient()
        client.rows = [_row("001_init", "DROP TABLE a;")]
        result = await MigrationExecutor(client).rollback(dry_run=True)
        assert [(p.name, p.down) for p in result.plan] == [("001_init", "DROP TABLE a;")]
        assert result.rolled_back == []
        assert len(client.rows) == 1

    async def test_missing_down_skipped(self) -> None:
        """Entries without DOWN SQL are skipped with a warning."""
        client = FakeClient()
        client.rows = [_row("001_init", None)]
        result = await MigrationExecutor(client).rollback()
        assert result.success is True
        assert result.plan == []
        assert result.warnings == ["No DOWN SQL for 001_init; skipped"]

    async def test_down_from_migration_file(self, tmp_path: Path) -> None:
        """A migrate entry without stored DOWN SQL reads its file."""
        (tmp_path / "001_init.sql").write_text("-- UP\nCREATE TABLE a (id int);\n-- DOWN\nDROP TABLE a;\n")
        client = FakeClient()
        client.rows = [_row("001_init", None)]
        result = await MigrationExecutor(client, migrations_dir=tmp_path).plan_rollback()
        assert [p.down for p in result.plan] == ["DROP TABLE a;"]

    async def test_failure_stops(self) -> None:
        """A failing DOWN statement rolls back that entry and stops."""
        client = FakeClient(fail_on="DROP TABLE b")
        client.rows = [_row("001_a", "DROP TABLE a;"), _row("002_b", "DROP TABLE b;")]

        result = await MigrationExecutor(client).rollback(step=2)

        assert result.success is False
        assert result.rolled_back == []
        assert result.error == "Rollback of 002_b failed: boom: DROP TABLE b"
        client.tx.rollback.assert_awaited_once()
        assert len(client.rows) == 2

    async def test_commit_failure_stops(self) -> None:
        """A failing COMMIT stops the rollback and reports the error."""
        client = FakeClient()
        client.rows = [_row("001_a", "DROP TABLE a;")]
        client.tx.commit.side_effect = RuntimeError("could not serialize access")

        result = await MigrationExecutor(client).rollback(step=1)

        assert result.success is False
        assert result.rolled_back == []
        assert result.error == "Rollback of 001_a failed at commit: could not serialize access"


class TestPushRollbackCycle:
    """A push restore point can be reversed."""

    async def test_apply_then_rollback(self) -> None:
        """Rollback runs the recorded DOWN list and removes the row."""
        client = FakeClient()
        executor = MigrationExecutor(client)
        up = [
            "CREATE TABLE accounts (id integer NOT NULL, PRIMARY KEY (id));",
            "ALTER TABLE users ADD COLUMN age integer;",
            "ALTER TABLE users ADD COLUMN status text;",
            "CREATE INDEX users_age_idx ON users (age);",
            "ALTER TABLE users ADD CONSTRAINT users_status_check CHECK (status <> '');",
        ]
        down = [
            "ALTER TABLE users DROP CONSTRAINT IF EXISTS users_status_check;",
            "DROP INDEX IF EXISTS users_age_idx;",
            "ALTER TABLE users DROP COLUMN IF EXISTS status;",
            "ALTER TABLE users DROP COLUMN IF EXISTS age;",
            "DROP TABLE IF EXISTS accounts CASCADE;",
        ]
        name = restore_point_name(now=datetime(2026, 1, 1, 12, 0, 0))

        applied = await executor.apply(up, down, name=name, source="push")
        assert applied.statements_applied == 5
        assert client.rows[0]["source"] == "push"

        client.tx.query.reset_mock()
        result = await executor.rollback()

        assert result.rolled_back == ["20260101120000_push"]
        assert [c.args[0] for c in client.tx.query.await_args_list][:-1] == down
        assert client.rows == []


class TestHelpers:
    """Small helpers."""

    def test_truncate_statement(self) -> None:
        """Long statements are cut to 200 characters with an ellipsis."""
        text = truncate_statement("SELECT\n   " + "x" * 400)
        assert len(text) == 200
        assert text.startswith("SELECT xxx")
        assert text.endswith("...")

    def test_restore_point_name(self) -> None:
        """Push restore points are timestamped."""
        assert restore_point_name("push", datetime(2026, 3, 4, 5, 6, 7)) == "20260304050607_push"
