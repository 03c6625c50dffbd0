"""Snapshot store: the last-known schema, persisted between commands.

The snapshot is a JSON document under the state directory holding the
schema observed after the last successful pull or push (tracking ids
included), its normalized fingerprint and the hash of the authoring
source at that moment.  Writes go
to a temporary file in the same directory and are moved into place with
``os.replace``, so a reader never sees a half-written snapshot.

Usage:
    store = SnapshotStore(Path(".db-reconcile"))
    store.save(schema, source_hash=file_hash(Path("schema.json")))
    snapshot = store.load()
"""

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from db_reconcile.errors import ConfigurationError
from db_reconcile.schema.models import DatabaseSchema
from db_reconcile.schema.normalize import schema_hash

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "snapshot.json"
SNAPSHOT_VERSION = 1


class Snapshot(BaseModel):
    """Persisted snapshot document."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = SNAPSHOT_VERSION
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dialect: str | None = None
    source_hash: str | None = None
    schema_hash: str | None = None
    database_schema: DatabaseSchema = Field(default_factory=DatabaseSchema, alias="schema")


def file_hash(path: Path) -> str | None:
    """SHA-256 of a file's bytes, or None when it does not exist."""
    if not path.is_file():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()


class SnapshotStore:
    """Reads and atomically replaces ``<state_dir>/snapshot.json``.

    Args:
        state_dir: Directory holding the snapshot; created on first save.
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / SNAPSHOT_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Snapshot | None:
        """Load the snapshot, or None when none has been saved yet.

        Raises:
            ConfigurationError: If the file exists but is not a snapshot.
        """
        if not self.exists():
            return None
        try:
            with open(self.path) as f:
                data = json.load(f)
            return Snapshot.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Corrupt snapshot {self.path}: {e}") from e

    def load_schema(self) -> DatabaseSchema | None:
        snapshot = self.load()
        return snapshot.database_schema if snapshot else None

    def save(
        self,
        schema: DatabaseSchema,
        source_hash: str | None = None,
        dialect: str | None = None,
    ) -> Snapshot:
        """Atomically replace the snapshot with *schema*."""
        snapshot = Snapshot(
            database_schema=schema,
            source_hash=source_hash,
            schema_hash=schema_hash(schema),
            dialect=dialect,
        )
        self.state_dir.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=".snapshot-", suffix=".json.tmp", dir=self.state_dir
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(snapshot.model_dump(mode="json", by_alias=True), f, indent=2, default=str)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Snapshot saved to %s", self.path)
        return snapshot

    def is_source_changed(self, source_path: Path) -> bool | None:
        """Whether the authoring source changed since the last snapshot.

        Returns:
            None when there is no snapshot or it recorded no source hash.
        """
        snapshot = self.load()
        if snapshot is None or snapshot.source_hash is None:
            return None
        return file_hash(source_path) != snapshot.source_hash
