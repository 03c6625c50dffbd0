"""Pydantic models for project configuration."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-reconcile.toml.

    Either ``url`` or the decomposed ``host``/``database`` fields must be
    given.  ``dialect`` is detected from the URL when omitted.
    """

    url: str | None = None
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dialect: str | None = None
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    connect_timeout: int = 10

    @model_validator(mode="after")
    def _require_location(self) -> "DatabaseProfile":
        if not self.url and not (self.host or self.database):
            raise ValueError("profile needs either 'url' or 'host'/'database'")
        return self


class SchemaSettings(BaseModel):
    """``[schema]`` section: the authoring source and what to compare."""

    file: str = "schema.json"
    include_functions: bool = False
    include_triggers: bool = False
    include_views: bool = False


class MigrationSettings(BaseModel):
    """``[migrations]`` section."""

    directory: str = "migrations"
    table_name: str = "_reconcile_migrations"
    naming: Literal["sequential", "timestamped"] = "sequential"


class StateSettings(BaseModel):
    """``[state]`` section."""

    directory: str = ".db-reconcile"
    ignore_file: str = ".db-reconcile-ignore"


class ReconcileConfig(BaseModel):
    """Complete project configuration from db-reconcile.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    default_profile: str | None = None
    schema_settings: SchemaSettings = Field(default_factory=SchemaSettings)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    root: str = "."  # Directory containing the config file
