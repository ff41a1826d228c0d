"""Configuration management for reclink.

Uses pydantic-settings to load engine defaults from environment variables.
Run-level matching configuration lives in reclink.models.rules and is passed
explicitly at construction time.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Search for a .env file in the working directory and its parents."""
    check_dir = Path.cwd()
    for _ in range(5):
        if (check_dir / ".env").exists():
            return check_dir / ".env"
        parent = check_dir.parent
        if parent == check_dir:
            break
        check_dir = parent

    return None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RECLINK_",
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # =========================
    # Blocking
    # =========================
    max_candidates_per_record: int = Field(default=50, ge=1)
    min_blocking_key_length: int = Field(default=2, ge=1)

    # =========================
    # Execution
    # =========================
    max_workers: int = Field(default=4, ge=1)
    shard_size: int = Field(default=500, ge=1)

    # =========================
    # Confidence tiers
    # =========================
    # Clamped to [0, 1] and sorted descending by Thresholds
    threshold_high: float = 0.85
    threshold_medium: float = 0.70
    threshold_low: float = 0.55

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
