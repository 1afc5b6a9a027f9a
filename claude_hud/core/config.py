"""
Claude HUD - Configuration
==========================

All runtime settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_hud_dir() -> Path:
    return Path.home() / ".claude" / "hud"


class Settings(BaseSettings):
    """Runtime settings loaded from environment (prefix ``CLAUDE_HUD_``)."""

    model_config = SettingsConfigDict(
        env_prefix="CLAUDE_HUD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Claude HUD"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "production", "test"] = "production"
    DEBUG: bool = False

    # ==========================================================================
    # Filesystem
    # ==========================================================================
    HUD_DIR: Path = Field(default_factory=_default_hud_dir)
    CONFIG_PATH: Optional[Path] = None
    SETTINGS_PATH: Path = Field(
        default_factory=lambda: Path.home() / ".claude" / "settings.json"
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    LOG_MAX_BYTES: int = 1024 * 1024
    LOG_BACKUP_COUNT: int = 1

    # ==========================================================================
    # Timing
    # ==========================================================================
    TICK_INTERVAL_SECONDS: float = 1.0
    REFRESH_POLL_SECONDS: float = 5.0
    PIPE_RETRY_SECONDS: float = 1.0
    READER_REFRESH_SECONDS: float = 30.0
    PIPE_LINE_LIMIT_BYTES: int = 1024 * 1024

    # ==========================================================================
    # Degradation
    # ==========================================================================
    SAFE_MODE_THRESHOLD: int = 10
    SAFE_MODE_WINDOW_SECONDS: float = 30.0
    SCHEMA_BANNER_VISIBLE_SECONDS: float = 10.0
    SCHEMA_BANNER_SUPPRESS_SECONDS: float = 60.0

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def log_file(self) -> Path:
        return self.HUD_DIR / "logs" / "hud.log"

    @computed_field  # type: ignore[misc]
    @property
    def config_file(self) -> Path:
        return self.CONFIG_PATH or self.HUD_DIR / "config.json"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def handover_file(self, terminal_id: str) -> Path:
        """Side-channel file the host rewrites when it rotates sessions."""
        return self.HUD_DIR / f"refresh-{terminal_id}.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
