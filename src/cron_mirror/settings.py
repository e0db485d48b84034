"""Application settings with Pydantic."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables and .env files."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "CRON_MIRROR_DATABASE_URL"),
    )
    db_pool_min_size: int = 1
    db_pool_max_size: int = 4

    # Project / executor. Legacy env names are still honoured.
    project_id: str = Field(
        default="front-office",
        validation_alias=AliasChoices(
            "CLAWDOS_PROJECT_ID",
            "CLAWDOX_PROJECT_ID",
            "CLAWDO_PROJECT_ID",
            "PROJECT_ID",
        ),
    )
    executor_bin: str = Field(
        default="/opt/homebrew/bin/openclaw",
        validation_alias=AliasChoices("EXECUTOR_BIN", "CLAWDBOT_BIN", "OPENCLAW_BIN"),
    )
    actor_agent_key: str = "agent:cron-mirror"

    # Mirror loop
    mirror_interval_seconds: float = 60.0
    mirror_backoff_max_seconds: float = 600.0
    list_timeout_seconds: float = 20.0
    instructions_max_chars: int = 2000

    # Drain loops
    drain_interval_seconds: float = 10.0
    drain_batch_size: int = 5
    run_timeout_seconds: float = 600.0
    delete_timeout_seconds: float = 60.0
    patch_timeout_seconds: float = 60.0
    output_tail_chars: int = 4000

    # Watchdog
    watchdog_interval_seconds: float = 30.0
    watchdog_max_age_seconds: float = 120.0
    watchdog_batch_size: int = 25

    # Observability
    heartbeat_interval_seconds: float = 300.0
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"
    metrics_port: int = 0

    @property
    def database_backend(self) -> str | None:
        """Database backend name derived from the URL scheme."""
        if not self.database_url:
            return None
        scheme = self.database_url.split(":", 1)[0]
        if scheme.startswith("sqlite"):
            return "sqlite"
        if scheme.startswith("postgres"):
            return "postgresql"
        return scheme


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reset_settings() -> None:
    """Reset settings (for testing)."""
    get_settings.cache_clear()
