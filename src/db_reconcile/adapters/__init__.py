"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the SQLAlchemy async adapter
used for every dialect family.

Usage:
    from db_reconcile.adapters import AsyncSQLAlchemyAdapter, DatabaseClient
"""

from db_reconcile.adapters.base import DatabaseClient, QueryResult, Transaction
from db_reconcile.adapters.engine import AsyncSQLAlchemyAdapter, normalize_async_url

__all__ = [
    "DatabaseClient",
    "QueryResult",
    "Transaction",
    "AsyncSQLAlchemyAdapter",
    "normalize_async_url",
]
