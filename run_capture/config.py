"""
Configuration management for run-capture.

Settings are read from RUN_CAPTURE_* environment variables (or a .env file)
and only consulted at the CLI boundary. Library entry points take explicit
options instead.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RUN_CAPTURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Artifacts
    artifacts_root: Optional[Path] = Field(
        default=None,
        description="Base directory for artifacts/capture_run/. Defaults to the capture cwd.",
    )

    # Capture defaults
    stdout_bytes: int = Field(default=4000, ge=0)
    stderr_bytes: int = Field(default=4000, ge=0)
    git_enabled: bool = Field(default=True)
    allow_raw_logs: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console or json")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
