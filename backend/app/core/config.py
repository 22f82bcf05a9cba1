"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore", # Allow extra env vars without failing
    )

    # App
    app_name: str = "Lifecycle Engine"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api/v1"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite+aiosqlite:///./lifecycle.db"
    db_ssl_mode: str = "disable" # "require" for production
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Status thresholds (days), used until a customer has enough payment history
    at_risk_default_days: int = 30
    lost_default_days: int = 60

    # Periodic status sweep
    status_sweep_enabled: bool = True
    status_sweep_interval_seconds: int = 6 * 60 * 60

    # Outbound notifications (n8n / WhatsApp webhook)
    notifications_enabled: bool = True
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # Query surface
    recent_changes_default_hours: int = 24


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
