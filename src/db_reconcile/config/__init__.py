"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_reconcile.config import load_config, DatabaseProfile, ReconcileConfig
"""

from db_reconcile.config.loader import (
    CONFIG_FILENAME,
    find_config,
    load_config,
    render_starter_config,
)
from db_reconcile.config.models import (
    DatabaseProfile,
    MigrationSettings,
    ReconcileConfig,
    SchemaSettings,
    StateSettings,
)

__all__ = [
    "CONFIG_FILENAME",
    "find_config",
    "load_config",
    "render_starter_config",
    "DatabaseProfile",
    "MigrationSettings",
    "ReconcileConfig",
    "SchemaSettings",
    "StateSettings",
]
