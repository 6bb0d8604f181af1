"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - oracle_timeout_seconds bounded 1–60: an oracle call always has a deadline

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow@db:5432/escrow"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Escrow policy
    escrow_default_hold_days: int = Field(14, ge=1)
    escrow_max_hold_days: int = Field(90, ge=1)
    oracle_timeout_seconds: float = Field(10.0, ge=1.0, le=60.0)
    auto_resolve_on_approve: bool = False

    # Arbitration oracle
    arbitration_backend: Literal["reputation", "anthropic"] = "reputation"
    reputation_block_threshold: float = Field(0.2, ge=0.0, le=1.0)

    # Anthropic (arbitration_backend == "anthropic")
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 30
    anthropic_base_delay_ms: int = 500
    anthropic_max_delay_ms: int = 8_000

    # Fund verification
    fund_verifier_url: str = "http://payments:8080"
    fund_verifier_api_key: str = ""

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
