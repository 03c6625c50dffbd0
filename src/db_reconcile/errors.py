"""Error taxonomy for schema reconciliation.

Every error raised by the library derives from ``ReconcileError`` so the
CLI boundary can format it uniformly.  Errors are grouped by *kind*:

- ``ConfigurationError`` / ``ProfileNotFoundError`` / ``IgnorePatternError``
- ``ConnectivityError`` (with a classification ``hint``)
- ``DialectIncompatibilityError``
- ``SchemaInvariantError``
- ``IgnoreDependencyError``
- ``DestructiveChangeError``
- ``ExecutionError``

Bookkeeping failures after a successful apply are never raised -- they are
reported as warnings on the result object.

Usage:
    from db_reconcile.errors import ConnectivityError

    try:
        await client.query("SELECT 1")
    except OSError as e:
        raise ConnectivityError.from_exception(e) from e
"""

from typing import Any


class ReconcileError(Exception):
    """Base class for all db-reconcile errors."""

    pass


class ConfigurationError(ReconcileError):
    """Raised when configuration is missing or invalid."""

    pass


class ProfileNotFoundError(ConfigurationError):
    """Raised when no database profile is configured."""

    pass


class IgnorePatternError(ConfigurationError):
    """Raised when an ignore file line cannot be parsed."""

    def __init__(self, line: str, reason: str, line_number: int | None = None):
        self.line = line
        self.reason = reason
        self.line_number = line_number
        where = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"Invalid ignore pattern '{line}'{where}: {reason}")


# Substrings of driver error messages mapped to a classification hint.
# Checked in order; the first match wins.
_CONNECTIVITY_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("authentication", (
        "password authentication failed",
        "authentication failed",
        "access denied",
        "invalid password",
        "no pg_hba.conf entry",
    )),
    ("tls", ("ssl", "tls", "certificate")),
    ("refused", ("connection refused", "econnrefused")),
    ("unreachable", (
        "could not translate host name",
        "name or service not known",
        "nodename nor servname",
        "no route to host",
        "network is unreachable",
        "getaddrinfo",
    )),
    ("timeout", ("timeout", "timed out")),
)


class ConnectivityError(ReconcileError):
    """Raised when the database cannot be reached or refuses the session.

    Attributes:
        hint: One of ``refused``, ``unreachable``, ``tls``,
            ``authentication``, ``timeout`` or ``unknown``.
    """

    def __init__(self, message: str, hint: str = "unknown"):
        self.hint = hint
        super().__init__(message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ConnectivityError":
        """Wrap a driver exception, keeping its message verbatim.

        Example:
            >>> err = ConnectivityError.from_exception(OSError("Connection refused"))
            >>> err.hint
            'refused'
        """
        message = str(exc) or exc.__class__.__name__
        return cls(message, hint=classify_connectivity_error(message))


def classify_connectivity_error(message: str) -> str:
    """Classify a connection failure message into a short hint."""
    lowered = message.lower()
    for hint, needles in _CONNECTIVITY_HINTS:
        if any(needle in lowered for needle in needles):
            return hint
    return "unknown"


class DialectIncompatibilityError(ReconcileError):
    """Raised when candidate DDL cannot run on the target dialect.

    Attributes:
        result: The ``DialectValidationResult`` carrying structured errors.
    """

    def __init__(self, result: Any):
        self.result = result
        count = len(result.errors)
        super().__init__(
            f"SQL contains {count} incompatibilit{'y' if count == 1 else 'ies'} "
            f"with dialect '{result.dialect}'"
        )


class SchemaInvariantError(ReconcileError):
    """Raised when a schema fails its structural invariants."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            "Schema invariant violations:\n" + "\n".join(f"  - {p}" for p in problems)
        )


class IgnoreDependencyError(ReconcileError):
    """Raised when an ignored type is still referenced by a kept column."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("\n".join(problems))


class DestructiveChangeError(ReconcileError):
    """Raised when destructive changes are present without confirmation."""

    def __init__(self, changes: list[str]):
        self.changes = changes
        super().__init__(
            f"{len(changes)} destructive change(s) require confirmation or --force:\n"
            + "\n".join(f"  - {c}" for c in changes)
        )


class ExecutionError(ReconcileError):
    """Raised when a statement fails while applying DDL.

    Attributes:
        statement: The failing statement (full text).
        statement_index: 1-based position of the failing statement.
        rolled_back: Whether the enclosing transaction was rolled back.
        statements_applied: Statements that completed before the failure.
    """

    def __init__(
        self,
        message: str,
        statement: str | None = None,
        statement_index: int | None = None,
        rolled_back: bool = False,
        statements_applied: int = 0,
    ):
        self.statement = statement
        self.statement_index = statement_index
        self.rolled_back = rolled_back
        self.statements_applied = statements_applied
        super().__init__(message)

    def format_report(self) -> str:
        """Format the failure for display, truncating the statement."""
        lines = [f"SQL Error: {self.args[0]}"]
        if self.statement:
            lines.append("")
            lines.append("Failed Statement:")
            lines.append(f"  {self.statement[:200]}")
        if self.statement_index:
            lines.append(f"Statement #: {self.statement_index}")
        lines.append("")
        if self.rolled_back:
            lines.append("All changes rolled back.")
        else:
            lines.append(
                f"Warning: {self.statements_applied} statement(s) were already "
                "applied (no transaction support)."
            )
        return "\n".join(lines)
