"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (remote store)
    database_url: str = "sqlite+aiosqlite:///./geolearn.db"

    # Local cache; None keeps session documents in memory only
    local_cache_dir: Optional[str] = None

    # Auto-save debounce
    autosave_quiet_period_seconds: float = 3.0

    # Remote sync retry
    sync_max_attempts: int = 5
    sync_base_delay_seconds: float = 0.5

    # Upload collaborator
    upload_base_url: str = "http://localhost:54321/storage/v1"
    upload_bucket: str = "lkpd-files"
    upload_api_key: str = ""
    upload_timeout_seconds: float = 30.0
    max_stl_size_mb: int = 50
    max_image_size_mb: int = 5

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # API Settings
    api_v1_prefix: str = "/api/v1"
    project_name: str = "GeoLearn Progress Engine"
    version: str = "1.0.0"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
