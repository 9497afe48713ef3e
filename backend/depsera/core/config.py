"""Application settings loaded from the environment."""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Depsera settings.

    Values come from environment variables (or a local ``.env`` file). Everything the
    manifest sync engine needs to tune lives here so the engine itself never reads the
    environment directly.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "local"
    LOCAL_DEVELOPMENT: bool = False
    LOG_LEVEL: str = "INFO"
    TESTING: bool = False

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "depsera"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "depsera"
    SQLALCHEMY_DATABASE_URI: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Manifest sync scheduling
    MANIFEST_SYNC_ENABLED: bool = True
    MANIFEST_SYNC_INTERVAL_SECONDS: int = 3600
    MANIFEST_SCHEDULE_CHECK_INTERVAL_SECONDS: int = 60
    MANIFEST_MANUAL_SYNC_COOLDOWN_SECONDS: int = 60
    MANIFEST_SHUTDOWN_WAIT_SECONDS: int = 30

    # Manifest fetching
    MANIFEST_FETCH_TIMEOUT_SECONDS: float = 10.0
    MANIFEST_MAX_BODY_BYTES: int = 1024 * 1024
    MANIFEST_ALLOW_PRIVATE_URLS: bool = False
    MANIFEST_HOST_CONCURRENCY_LIMIT: int = 5

    # Reconciliation
    MANIFEST_SYNC_EXCLUDED_FIELDS: List[str] = []
    MANIFEST_HISTORY_RETENTION_DAYS: int = 90

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def database_uri(self) -> str:
        """Return the async database URI, preferring an explicit override."""
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
