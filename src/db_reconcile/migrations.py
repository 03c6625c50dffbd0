"""Migration file format.

A migration file is plain SQL with two sections introduced by marker
comments on their own lines::

    -- Migration: add_created_at
    -- Created: 2026-01-01T00:00:00
    -- UP
    ALTER TABLE users ADD COLUMN created_at timestamp with time zone;

    -- DOWN
    ALTER TABLE users DROP COLUMN IF EXISTS created_at;

Files are named ``NNN_name.sql`` (sequential) or
``YYYYMMDDHHMMSS_name.sql`` (timestamped).

Usage:
    from db_reconcile.migrations import list_migration_files, split_statements

    for migration in list_migration_files(Path("migrations")):
        for statement in split_statements(migration.up):
            ...
"""

import hashlib
import re
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel


NamingStyle = Literal["sequential", "timestamped"]

_MARKER_RE = re.compile(r"^\s*--\s*(UP|DOWN)\s*$", re.IGNORECASE)
_FILENAME_RE = re.compile(r"^(\d{14}|\d{3,})_(.+)\.sql$")
_DOLLAR_TAG_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


def parse_sections(content: str) -> tuple[str, str]:
    """Split file content into its ``(up, down)`` sections.

    Text before ``-- UP`` (the header) is dropped.  A file without markers
    is treated as all-UP.

    Example:
        >>> parse_sections("-- UP\\nCREATE TABLE t (a int);\\n-- DOWN\\nDROP TABLE t;\\n")
        ('CREATE TABLE t (a int);', 'DROP TABLE t;')
    """
    sections: dict[str, list[str]] = {}
    current: str | None = None
    saw_marker = False
    for line in content.splitlines():
        match = _MARKER_RE.match(line)
        if match:
            current = match.group(1).upper()
            sections.setdefault(current, [])
            saw_marker = True
            continue
        if current is not None:
            sections[current].append(line)
    if not saw_marker:
        return content.strip(), ""
    up = "\n".join(sections.get("UP", [])).strip()
    down = "\n".join(sections.get("DOWN", [])).strip()
    return up, down


def split_statements(sql: str) -> list[str]:
    """Split SQL text into statements on top-level semicolons.

    Single-quoted strings (with ``''`` escapes), double-quoted identifiers
    and dollar-quoted bodies never split.  Lines whose first non-blank
    characters are ``--`` are skipped.  Each returned statement keeps its
    terminating semicolon.

    Example:
        >>> split_statements("CREATE TABLE a (x text DEFAULT ';');\\n-- note\\nDROP TABLE b;")
        ["CREATE TABLE a (x text DEFAULT ';');", 'DROP TABLE b;']
    """
    statements: list[str] = []
    buffer: list[str] = []
    quote: str | None = None  # "'", '"' or a dollar tag such as "$body$"

    for line in sql.splitlines(keepends=True):
        if quote is None and line.lstrip().startswith("--"):
            continue
        i = 0
        while i < len(line):
            ch = line[i]
            if quote is not None:
                if quote.startswith("$"):
                    if line.startswith(quote, i):
                        buffer.append(quote)
                        i += len(quote)
                        quote = None
                        continue
                elif ch == quote:
                    if line[i + 1:i + 2] == quote:
                        buffer.append(ch * 2)
                        i += 2
                        continue
                    quote = None
                buffer.append(ch)
                i += 1
                continue

            if ch in ("'", '"'):
                quote = ch
            elif ch == "$":
                tag = _DOLLAR_TAG_RE.match(line, i)
                if tag:
                    quote = tag.group(0)
                    buffer.append(quote)
                    i += len(quote)
                    continue
            elif ch == "-" and line.startswith("--", i):
                buffer.append("\n")
                break
            elif ch == ";":
                statement = "".join(buffer).strip()
                if statement:
                    statements.append(f"{statement};")
                buffer = []
                i += 1
                continue
            buffer.append(ch)
            i += 1

    tail = "".join(buffer).strip()
    if tail:
        statements.append(tail)
    return statements


def is_comment_only(statement: str) -> bool:
    """True when every non-blank line of *statement* is a ``--`` comment."""
    lines = [line.strip() for line in statement.splitlines() if line.strip()]
    return all(line.startswith("--") for line in lines)


def render_migration(
    name: str,
    up: list[str],
    down: list[str],
    created_at: datetime | None = None,
) -> str:
    """Render statements as migration file content."""
    created_at = created_at or datetime.now()
    lines = [
        f"-- Migration: {name}",
        f"-- Created: {created_at.isoformat(timespec='seconds')}",
        "-- UP",
        *up,
        "",
        "-- DOWN",
        *down,
        "",
    ]
    return "\n".join(lines)


# ------------------------------------------------------------------
# Naming and hashing
# ------------------------------------------------------------------


def slugify(name: str) -> str:
    """Lowercase *name* and collapse non-alphanumerics to underscores."""
    return _SLUG_RE.sub("_", name.lower()).strip("_") or "migration"


def generate_timestamped_name(name: str, now: datetime | None = None) -> str:
    """``YYYYMMDDHHMMSS_<slug>``, used for files and push restore points.

    Example:
        >>> generate_timestamped_name("Add Users", datetime(2026, 1, 2, 3, 4, 5))
        '20260102030405_add_users'
    """
    now = now or datetime.now()
    return f"{now.strftime('%Y%m%d%H%M%S')}_{slugify(name)}"


def content_hash(content: str) -> str:
    """SHA-256 hex digest of file content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class MigrationFile(BaseModel):
    """A migration file on disk."""

    path: Path
    version: str
    name: str
    content: str

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def hash(self) -> str:
        return content_hash(self.content)

    @property
    def up(self) -> str:
        return parse_sections(self.content)[0]

    @property
    def down(self) -> str:
        return parse_sections(self.content)[1]


def list_migration_files(directory: Path) -> list[MigrationFile]:
    """All well-named migration files in *directory*, ordered by filename."""
    if not directory.is_dir():
        return []
    files: list[MigrationFile] = []
    for path in sorted(directory.glob("*.sql")):
        match = _FILENAME_RE.match(path.name)
        if not match:
            continue
        files.append(MigrationFile(
            path=path,
            version=match.group(1),
            name=path.stem,
            content=path.read_text(),
        ))
    return files


def next_migration_filename(
    directory: Path,
    name: str,
    naming: NamingStyle = "sequential",
    now: datetime | None = None,
) -> str:
    """Filename for a new migration in *directory*.

    Sequential numbering continues from the highest existing ``NNN_``
    prefix; timestamped naming uses the current time.

    Example:
        >>> next_migration_filename(Path("/nonexistent"), "init")
        '001_init.sql'
    """
    if naming == "timestamped":
        return f"{generate_timestamped_name(name, now)}.sql"
    numbers = [
        int(m.version) for m in list_migration_files(directory) if len(m.version) < 14
    ]
    return f"{max(numbers, default=0) + 1:03d}_{slugify(name)}.sql"
