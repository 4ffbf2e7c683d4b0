"""Configuration settings for hrsync."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_SYNC_INTERVAL_MINUTES = 30


def default_db_path() -> Path:
    return Path.home() / ".hrsync" / "hrsync.db"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_key: str  # Publishable (anon) key; row access is gated by the admin session

    # Admin session, opened at startup when both are present
    admin_email: str | None = None
    admin_password: str | None = None

    # Local store
    local_db_path: Path = default_db_path()

    # Sync
    sync_interval_minutes: float = DEFAULT_SYNC_INTERVAL_MINUTES
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_minutes * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
