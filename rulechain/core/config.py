from typing import Any
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip():
            return v.strip().upper()
        return "INFO"

    # Database - two ways to configure

    # Option 1: DATABASE_URL directly
    DATABASE_URL: str = "sqlite+aiosqlite:///./rulechain.db"

    # Option 2: separate PostgreSQL settings
    # When POSTGRES_HOST is set these build the URL instead
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "rulechain"

    # Pool settings for PostgreSQL
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Rule engine
    RULE_ENGINE_MAX_CHAIN_NODES: int = 1000
    RULE_ENGINE_ACTION_TIMEOUT: float = 10.0  # seconds per device command
    RULE_ENGINE_CHAIN_TIMEOUT: float = 30.0  # seconds per chain execution
    RULE_ENGINE_WORKER_CONCURRENCY: int = 20
    RULE_ENGINE_STRICT_TRANSFORMS: bool = False

    @property
    def effective_database_url(self) -> str:
        """Database URL actually used.

        DATABASE_URL wins unless POSTGRES_HOST is set, in which case the
        URL is built from the POSTGRES_* settings.
        """
        if self.POSTGRES_HOST:
            return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return self.DATABASE_URL


settings = Settings()
