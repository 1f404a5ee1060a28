"""Connector factory.

Turns configured profiles into connectors and scopes their lifetime.

Usage:
    from db_reconcile.config import load_config
    from db_reconcile.factory import connector_session, get_profile

    config = load_config()
    async with connector_session(get_profile(config, "prod"), "prod") as connector:
        tables = await connector.get_tables()
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import quote

from db_reconcile.adapters.base import DatabaseConnector, DatabaseEngine
from db_reconcile.adapters.mysql import AsyncMySQLConnector
from db_reconcile.adapters.postgres import AsyncPostgresConnector
from db_reconcile.adapters.sqlite import AsyncSqliteConnector
from db_reconcile.config.models import ConnectionProfile, ReconcileConfig
from db_reconcile.errors import ReconcileError

logger = logging.getLogger(__name__)

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"


class ProfileNotFoundError(ReconcileError):
    """Raised when a profile name is not in the loaded configuration."""


def get_profile(config: ReconcileConfig, name: str) -> ConnectionProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not configured.
    """
    if name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found. Available profiles: {available}"
        )
    return config.profiles[name]


def resolve_url(profile: ConnectionProfile) -> str:
    """Resolve profile URL with password substitution.

    Substitutes the ``[YOUR-PASSWORD]`` placeholder in the profile URL
    with the URL-quoted ``db_password`` value when both are present.

    Example:
        >>> profile = ConnectionProfile(url="postgresql://app:[YOUR-PASSWORD]@db/app", db_password="p@ss")
        >>> resolve_url(profile)
        'postgresql://app:p%40ss@db/app'
    """
    url = profile.url
    if profile.db_password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
    return url


def get_connector(profile: ConnectionProfile, connection_id: str = "") -> DatabaseConnector:
    """Build an unconnected connector for a profile.

    Args:
        profile: Connection profile.
        connection_id: Identifier for diffs, runs and logs (usually the
            profile name).

    Raises:
        ValueError: If the profile's provider has no connector.
    """
    url = resolve_url(profile)
    provider = DatabaseEngine(profile.provider)

    if provider is DatabaseEngine.POSTGRES:
        return AsyncPostgresConnector(
            url,
            connection_id=connection_id,
            default_schema=profile.default_schema or "public",
        )
    if provider.is_mysql_family:
        if provider is DatabaseEngine.MARIADB and url.startswith("mysql://"):
            url = "mariadb://" + url[len("mysql://"):]
        return AsyncMySQLConnector(
            url,
            connection_id=connection_id,
            default_schema=profile.default_schema,
        )
    if provider is DatabaseEngine.SQLITE:
        return AsyncSqliteConnector(url, connection_id=connection_id)

    raise ValueError(f"Unsupported provider: {profile.provider}")


@asynccontextmanager
async def connector_session(
    profile: ConnectionProfile, connection_id: str = ""
) -> AsyncIterator[DatabaseConnector]:
    """Connect a profile's connector and always disconnect on exit.

    Raises:
        DatabaseConnectionError: If the database cannot be reached.
    """
    connector = get_connector(profile, connection_id)
    try:
        await connector.connect()
        logger.info("Connected to profile %s (%s)", connection_id, profile.provider.value)
        yield connector
    finally:
        await connector.disconnect()
