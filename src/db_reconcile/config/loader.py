"""Configuration loading from TOML.

Lookup order for the config file:

1. ``config_path`` argument
2. ``DB_RECONCILE_CONFIG`` environment variable
3. ``db-reconcile.toml`` in the current working directory
"""

import os
import tomllib
from pathlib import Path

from db_reconcile.config.models import ConnectionProfile, ReconcileConfig, SyncDefaults

CONFIG_ENV_VAR = "DB_RECONCILE_CONFIG"
DEFAULT_CONFIG_FILE = "db-reconcile.toml"


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> ReconcileConfig:
    """Load connection profiles and sync defaults from a TOML file.

    Args:
        config_path: Path to the TOML file.  When ``None``, uses
            ``$DB_RECONCILE_CONFIG`` or ``./db-reconcile.toml``.

    Returns:
        ReconcileConfig with all profiles.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML is malformed or a profile is invalid.

    Example:
        >>> config = load_config(Path("db-reconcile.toml"))  # doctest: +SKIP
        >>> config.profiles["prod"].provider
        <DatabaseEngine.POSTGRES: 'postgres'>
    """
    if config_path is None:
        config_path = default_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with [profiles.<name>] tables "
            f"or set {CONFIG_ENV_VAR}."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = ConnectionProfile(**profile_data)

    return ReconcileConfig(
        profiles=profiles,
        sync=SyncDefaults(**data.get("sync", {})),
        history_file=data.get("history", {}).get("file"),
    )
