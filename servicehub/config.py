"""Configuration settings for servicehub."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    return Path.home() / ".servicehub"


class Settings(BaseSettings):
    """Engine settings loaded from environment (``SERVICEHUB_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="SERVICEHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    # Storage / logs
    data_dir: Path = _default_data_dir()
    db_path: Path | None = None  # Defaults to <data_dir>/jobs.db
    log_level: str = "INFO"

    # Activity log limits
    max_message_length: int = 2000
    max_attachment_bytes: int = 10 * 1024 * 1024
    allowed_attachment_extensions: list[str] = [
        "jpeg",
        "jpg",
        "png",
        "gif",
        "pdf",
        "doc",
        "docx",
        "txt",
    ]

    # Statistics sink
    stats_endpoint: str | None = None
    stats_timeout_seconds: float = 5.0

    # Dashboard
    recent_jobs_limit: int = 5

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or self.data_dir / "jobs.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
