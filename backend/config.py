"""Shiftbook API configuration."""
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Auth
    SECRET_KEY: str = "super-secret-key-please-change-in-prod"
    ALGORITHM: str = "HS256"
    TOKEN_EXPIRE_MINUTES: int = 60
    RESET_LINK_BASE: str = "http://localhost:8501"

    # Persistence
    STORE_BACKEND: Literal["sqlite", "supabase"] = "sqlite"
    DB_NAME: str = "shiftbook.db"
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None

    # Local wall clock used for "now" and "today"
    TZ: str = "Europe/London"

    CURRENCY_SYMBOL: str = "£"
    ACTIVE_WINDOW_MINUTES: int = 60
    CLOCK_OUT_WINDOW_MINUTES: int = 60
    RECENT_SHIFTS_LIMIT: int = 5

    LOG_LEVEL: str = "INFO"


settings = Settings()
