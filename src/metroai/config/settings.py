"""MetroAI configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the MetroAI field uploader.

    Settings are loaded from environment variables with the METROAI_ prefix.
    For example, METROAI_MAX_RETRY_ATTEMPTS=5 sets max_retry_attempts to 5.
    """

    model_config = SettingsConfigDict(
        env_prefix="METROAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    api_base_url: str = "http://localhost:8000"
    upload_timeout: float = 30.0  # seconds per request

    # Upload policy
    max_retry_attempts: int = 3  # application failures before "failed"
    watch_interval: int = 30  # seconds between foreground queue runs
    photo_retention_days: int = 7  # uploaded photos kept locally

    # Active user (owner of the local stats aggregate)
    current_username: str | None = None

    # File paths
    data_dir: Path = Path("~/.local/share/metroai")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None
    device_id: str | None = None  # added to every log record

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Ensure the API URL has a scheme and no trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("upload_timeout")
    @classmethod
    def validate_upload_timeout(cls, v: float) -> float:
        """Ensure the request timeout is positive."""
        if v <= 0:
            raise ValueError("upload_timeout must be greater than 0")
        return v

    @field_validator("max_retry_attempts", "watch_interval", "photo_retention_days")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ensure counters and intervals are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def db_path(self) -> Path:
        """Return path of the SQLite record store."""
        return self.data_path / "queue.db"

    @cached_property
    def artifacts_path(self) -> Path:
        """Return directory holding captured images and thumbnails."""
        return self.data_path / "photos"

    @cached_property
    def token_path(self) -> Path:
        """Return path of the stored bearer token."""
        return self.data_path / "token"

    @cached_property
    def lock_path(self) -> Path:
        """Return path of the lock file guarding queue runs."""
        return self.data_path / "queue.lock"
