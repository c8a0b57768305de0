"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All settings come from environment variables or .env (never hardcoded secrets)
    - get_settings() is cached (lru_cache) — single instance per process
    - fetch_pool_size >= 1 (bounded worker pool for collaborator calls)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - enrollment_control_rules parsed from JSON (env var ENROLLMENT_CONTROL_RULES)
    - Defaults provided for all settings: works out-of-the-box with docker-compose
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from enrollment.core.enrollment_control import ProgramEnrollmentControl


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://enrollment:enrollment@db:5432/enrollment"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Workflow
    fetch_pool_size: int = Field(8, ge=1)
    event_queue_size: int = Field(100, ge=1)

    # Enrollment control (optional allow-list stage)
    enrollment_control_enabled: bool = False
    enrollment_control_rules: list[ProgramEnrollmentControl] = []

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
