"""Authoring schema source: where the desired schema comes from.

Two formats are accepted:

- ``.json``: a serialized ``DatabaseSchema`` document, as written by
  ``pull``, ``export`` and ``import``.
- ``.py``: a module defining a module-level ``schema``, either a
  ``DatabaseSchema`` or a dict in the JSON layout.

Tracking ids are carried on the schema objects themselves, so the loaded
schema doubles as the annotated tree the diff engine uses for rename
detection.

Usage:
    schema = load_schema_source(Path("schema.json"))
    write_schema_source(schema, Path("schema.json"))
"""

import importlib.util
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from db_reconcile.errors import ConfigurationError
from db_reconcile.schema.models import DatabaseSchema

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".py")


def _load_python(path: Path) -> object:
    spec = importlib.util.spec_from_file_location(f"_db_reconcile_source_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import schema module {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    if not hasattr(module, "schema"):
        raise ConfigurationError(f"{path} does not define a module-level 'schema'")
    return module.schema


def load_schema_source(path: Path) -> DatabaseSchema:
    """Load the desired schema from *path*.

    Args:
        path: ``.json`` document or ``.py`` module.

    Returns:
        The desired ``DatabaseSchema``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ConfigurationError: If the file type is unsupported or the content
            is not a valid schema.

    Example:
        >>> import tempfile, pathlib
        >>> p = pathlib.Path(tempfile.mkdtemp()) / "schema.json"
        >>> _ = p.write_text('{"tables": [{"name": "users", "columns": []}]}')
        >>> [t.name for t in load_schema_source(p).tables]
        ['users']
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Schema source not found: {path}")
    if path.suffix not in SUPPORTED_SUFFIXES:
        raise ConfigurationError(
            f"Unsupported schema source '{path.name}'. "
            f"Expected one of: {', '.join(SUPPORTED_SUFFIXES)}"
        )

    if path.suffix == ".py":
        raw = _load_python(path)
        if isinstance(raw, DatabaseSchema):
            return raw
    else:
        try:
            with open(path) as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    try:
        return DatabaseSchema.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid schema in {path}:\n{e}") from e


def dump_schema(schema: DatabaseSchema) -> str:
    """Serialize *schema* as an authoring JSON document.

    Fields left at their defaults are omitted to keep the file readable.
    """
    data = schema.model_dump(mode="json", exclude_defaults=True)
    return json.dumps(data, indent=2, default=str) + "\n"


def write_schema_source(schema: DatabaseSchema, path: Path) -> Path:
    """Write *schema* as JSON to *path*.

    Raises:
        ConfigurationError: If *path* is a Python source; those are edited
            by hand and never overwritten.
    """
    path = Path(path)
    if path.suffix == ".py":
        raise ConfigurationError(
            f"Refusing to overwrite Python schema module {path}; "
            "write to a .json file with --output instead"
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_schema(schema))
    logger.debug("Wrote schema source %s", path)
    return path
