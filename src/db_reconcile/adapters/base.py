"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol the executor and the MySQL/SQLite
introspectors talk to.  All methods are ``async def`` -- the library is
async-first.

Parameters are positional and written with the target dialect's
placeholder (``$1`` for PostgreSQL, ``?`` for MySQL and SQLite, see
``Dialect.placeholder``).

Usage:
    from db_reconcile.adapters.base import DatabaseClient

    async def count_rows(client: DatabaseClient, table: str) -> int:
        result = await client.query(f"SELECT COUNT(*) AS n FROM {table}")
        return result.rows[0]["n"]
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from db_reconcile.dialects import Dialect


@dataclass
class QueryResult:
    """Rows returned by a query, as dicts keyed by column name.

    Example:
        result = QueryResult(rows=[{"id": 1}], row_count=1, fields=["id"])
        result.first()   # {'id': 1}
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    fields: list[str] = field(default_factory=list)

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


class Transaction(Protocol):
    """An open transaction on one connection."""

    async def query(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        """Run a statement inside the transaction."""
        ...

    async def commit(self) -> None:
        """Commit and release the connection."""
        ...

    async def rollback(self) -> None:
        """Roll back and release the connection."""
        ...


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    Attributes:
        dialect: The dialect the client is connected to.
    """

    dialect: Dialect

    async def query(self, sql: str, params: list[Any] | None = None) -> QueryResult:
        """Run one statement in its own implicit transaction.

        Args:
            sql: A single SQL statement.
            params: Positional parameters matching the dialect placeholders.

        Returns:
            ``QueryResult``; ``rows`` is empty for statements without a
            result set.

        Example:
            result = await client.query(
                "SELECT name FROM _reconcile_migrations WHERE batch = $1", [3]
            )
        """
        ...

    async def begin_transaction(self) -> Transaction:
        """Open a transaction on a dedicated connection.

        The caller must finish it with ``commit()`` or ``rollback()``.
        """
        ...

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` to verify the connection."""
        ...

    async def close(self) -> None:
        """Close the connection pool and clean up resources."""
        ...
