"""
Centralised configuration via Pydantic Settings.

Reads from .env in dev and from the deployment's environment variables in production.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore platform-injected vars we don't need
    )

    # ── Application ─────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ── Database ────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./dev.db"
    database_echo: bool = False
    create_tables_on_startup: bool = True

    @field_validator("database_url", mode="before")
    @classmethod
    def assemble_db_url(cls, v: str) -> str:
        """Managed Postgres hands out postgres:// but SQLAlchemy needs postgresql+asyncpg://."""
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url

    # ── Security ────────────────────────────────────────────
    api_key: str = "change-me"
    rate_limit_default: str = "240/minute"

    # ── Rundown tunables ────────────────────────────────────
    add_item_max_retries: int = Field(
        default=3, ge=1, description="Attempts per add-item before a position conflict is surfaced"
    )
    default_show_duration: int = Field(default=3600, ge=0, description="Seconds")


@lru_cache
def get_settings() -> Settings:
    return Settings()
