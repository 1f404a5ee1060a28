"""Pydantic models for connection profiles and sync defaults."""

from pydantic import BaseModel, Field

from db_reconcile.adapters.base import DatabaseEngine


# ============================================================================
# Configuration Models
# ============================================================================


class ConnectionProfile(BaseModel):
    """Database connection profile from db-reconcile.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: DatabaseEngine = DatabaseEngine.POSTGRES
    default_schema: str | None = None
    read_only: bool = False


class SyncDefaults(BaseModel):
    """``[sync]`` table: defaults for ``SyncOptions`` and row paging."""

    batch_size: int = Field(default=1000, ge=1)
    continue_on_error: bool = False
    max_errors: int | None = Field(default=None, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=0.5, ge=0)
    page_size: int = Field(default=5000, ge=1)


class ReconcileConfig(BaseModel):
    """Complete configuration from db-reconcile.toml."""

    profiles: dict[str, ConnectionProfile] = Field(default_factory=dict)
    sync: SyncDefaults = Field(default_factory=SyncDefaults)
    history_file: str | None = None
