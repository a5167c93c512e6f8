"""Application configuration via pydantic-settings.

Values are loaded from environment variables (.env file). Settings are
organized into logical groups and composed into a single Settings object.
Invalid values raise a ValidationError when the settings are built; nothing
is silently clamped.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Location of the embedded SQLite database."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    data_dir: str = Field(default="./data", min_length=1, description="Directory holding the database file")
    database_url: str | None = Field(
        default=None,
        description="Async SQLAlchemy URL; defaults to a SQLite file inside data_dir",
    )

    @property
    def url(self) -> str:
        """Effective async database URL."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_dir}/vizcraft.db"


class AuditSettings(BaseSettings):
    """Audit trail tuning knobs (AUDIT_* environment variables)."""

    model_config = SettingsConfigDict(env_prefix="AUDIT_", env_file=".env", extra="ignore")

    flush_interval_ms: int = Field(default=5000, gt=0, description="Interval between batch flushes")
    max_memory_entries: int = Field(default=1000, ge=0, description="Hot cache capacity")
    batch_size: int = Field(default=100, gt=0, description="Maximum entries written per transaction")
    retention_days: int = Field(default=90, ge=0, description="Days to retain entries (0 = forever)")
    cleanup_frequency: int = Field(default=100, gt=0, description="Flush cycles between retention sweeps")
    pending_warn_threshold: int = Field(
        default=10_000,
        gt=0,
        description="Pending-write count above which failed flushes log a backlog warning",
    )
    drain_retry_delay_ms: int = Field(
        default=100,
        ge=0,
        description="Pause between failed flush attempts while draining at shutdown",
    )
    log_entries: bool = Field(default=True, description="Emit every recorded entry as a structured log line")

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval_ms / 1000

    @property
    def drain_retry_delay_seconds(self) -> float:
        return self.drain_retry_delay_ms / 1000


class Settings(BaseSettings):
    """Root settings composing all sub-settings.

    Usage:
        settings = Settings()
        settings.db.url
        settings.audit.batch_size
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # Composed settings (loaded from same .env)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


# Module-level singleton, import this wherever settings are needed.
settings = Settings()
