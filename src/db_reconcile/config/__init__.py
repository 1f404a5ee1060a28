"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_reconcile.config import load_config, ConnectionProfile, ReconcileConfig
"""

from db_reconcile.config.loader import load_config
from db_reconcile.config.models import ConnectionProfile, ReconcileConfig, SyncDefaults

__all__ = ["load_config", "ConnectionProfile", "ReconcileConfig", "SyncDefaults"]
