"""
Configuration management using pydantic-settings.

Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SCOPE_SHEET_DB = Path(__file__).parent.parent.parent / "data" / "scope_sheets.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Claim API Configuration
    api_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the claim API",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the claim owner's session",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Per-request timeout in seconds",
    )

    # Async job tracking
    parse_poll_interval_seconds: float = Field(
        default=3.0,
        description="Interval between carrier-estimate parse status polls",
    )
    audit_progress_delays: tuple[float, ...] = Field(
        default=(0.8, 3.0, 6.0, 9.0),
        description="Seconds after start at which the audit progress indicator advances",
    )

    # Contractor access
    magic_link_ttl_days: int = Field(
        default=7,
        description="How long a contractor access token stays valid",
    )

    # Reference server configuration
    scope_sheet_db_path: Path = Field(
        default=DEFAULT_SCOPE_SHEET_DB,
        description="SQLite file backing drafts and scope sheet submissions",
    )
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def api_root(self) -> str:
        """Base URL without a trailing slash."""
        return self.api_base_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading environment on every call.
    """
    return Settings()


# Convenience access
settings = get_settings()
