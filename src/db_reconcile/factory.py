"""Database client factory.

Resolves which profile to use, turns it into a connection URL and dialect,
and opens a tested ``DatabaseClient`` for it.

Profile priority:
1. ``--profile`` flag (explicit argument)
2. ``{prefix}DB_PROFILE`` environment variable
3. ``default_profile`` in db-reconcile.toml
4. The only profile, when exactly one is configured
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import quote

from db_reconcile.adapters import AsyncSQLAlchemyAdapter, DatabaseClient
from db_reconcile.config.models import DatabaseProfile, ReconcileConfig
from db_reconcile.dialects import Dialect, detect_dialect, get_dialect
from db_reconcile.errors import ConfigurationError, ConnectivityError, ProfileNotFoundError

logger = logging.getLogger(__name__)

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"

_URL_SCHEMES: dict[str, str] = {
    "postgres": "postgresql",
    "xata": "postgresql",
    "mysql": "mysql",
    "sqlite": "sqlite",
}


# ============================================================================
# Profile Resolution
# ============================================================================


@dataclass(frozen=True)
class ConnectionTarget:
    """A resolved profile: where to connect and which dialect to speak."""

    profile_name: str
    url: str
    dialect: Dialect
    connect_timeout: int = 10


def get_active_profile_name(
    config: ReconcileConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> str:
    """Get active profile name.

    Args:
        config: Loaded project configuration.
        profile_name: Explicit profile (``--profile``); wins when given.
        env_prefix: Prefix of the ``DB_PROFILE`` environment variable,
            e.g. ``"MC_"`` reads ``MC_DB_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    if config.default_profile:
        return config.default_profile

    if len(config.profiles) == 1:
        return next(iter(config.profiles))

    available = ", ".join(config.profiles) or "(none)"
    raise ProfileNotFoundError(
        "No database profile selected.\n"
        f"Pass --profile, set {env_prefix}DB_PROFILE, or set default_profile.\n"
        f"Available profiles: {available}"
    )


def get_active_profile(
    config: ReconcileConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile is selected or the selected
            one is not in the config file
    """
    name = get_active_profile_name(config, profile_name, env_prefix)
    if name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in config.\n"
            f"Available profiles: {', '.join(config.profiles) or '(none)'}"
        )
    return name, config.profiles[name]


# ============================================================================
# URL and Dialect Resolution
# ============================================================================


def _build_url(profile: DatabaseProfile, dialect: Dialect) -> str:
    """Assemble a URL from decomposed connection fields."""
    scheme = _URL_SCHEMES[dialect.family]
    if dialect.family == "sqlite":
        return f"{scheme}:///{profile.database or ':memory:'}"

    user = profile.user or dialect.default_user
    password = profile.password or profile.db_password
    auth = quote(user, safe="")
    if password:
        auth += f":{quote(password, safe='')}"
    host = profile.host or "localhost"
    port = profile.port or dialect.default_port
    netloc = f"{auth}@{host}" if auth else host
    if port:
        netloc += f":{port}"
    return f"{scheme}://{netloc}/{profile.database or ''}"


def resolve_dialect(profile: DatabaseProfile) -> Dialect:
    """Dialect of *profile*: explicit ``dialect`` or detected from its URL.

    Raises:
        ConfigurationError: If neither is conclusive.
    """
    if profile.dialect:
        return get_dialect(profile.dialect)
    if profile.url:
        detected = detect_dialect(profile.url)
        if detected:
            return get_dialect(detected)
        raise ConfigurationError(
            f"Cannot detect the dialect of '{profile.url}'; set 'dialect' in the profile"
        )
    return get_dialect("postgres")


def resolve_url(profile: DatabaseProfile, dialect: Dialect | None = None) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config
        dialect: Dialect used for decomposed fields (default: resolved)

    Returns:
        Connection URL with password substituted

    Example:
        >>> p = DatabaseProfile(url="postgresql://app:[YOUR-PASSWORD]@db/app", db_password="p@ss")
        >>> resolve_url(p)
        'postgresql://app:p%40ss@db/app'
    """
    if profile.url:
        url = profile.url
        if profile.db_password and PASSWORD_PLACEHOLDER in url:
            url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
        return url
    return _build_url(profile, dialect or resolve_dialect(profile))


def resolve_target(
    config: ReconcileConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> ConnectionTarget:
    """Resolve the active profile into a ``ConnectionTarget``."""
    name, profile = get_active_profile(config, profile_name, env_prefix)
    dialect = resolve_dialect(profile)
    url = resolve_url(profile, dialect)
    if PASSWORD_PLACEHOLDER in url:
        raise ConfigurationError(
            f"Profile '{name}' URL contains {PASSWORD_PLACEHOLDER} but no db_password is set"
        )
    return ConnectionTarget(
        profile_name=name,
        url=url,
        dialect=dialect,
        connect_timeout=profile.connect_timeout,
    )


# ============================================================================
# Database Client Factory
# ============================================================================


async def create_client(target: ConnectionTarget) -> DatabaseClient:
    """Open a client for *target* and check that it answers.

    Returns:
        Connected ``DatabaseClient``; the caller must ``close()`` it.

    Raises:
        ConnectivityError: If the connection test fails; the driver's
            message is kept verbatim with a classification hint.
    """
    client = AsyncSQLAlchemyAdapter(
        target.url, target.dialect, connect_timeout=target.connect_timeout
    )
    try:
        await client.test_connection()
    except Exception as e:
        await client.close()
        raise ConnectivityError.from_exception(e) from e
    logger.debug("Connected to profile %s (%s)", target.profile_name, target.dialect.name)
    return client
