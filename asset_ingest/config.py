"""Application configuration."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    postgres_host: str = "postgres"
    postgres_port: int = 5432
    postgres_user: str = "asset_ingest"
    postgres_password: str = "changeme"
    postgres_db: str = "asset_ingest_db"
    database_dsn: Optional[str] = None  # Overrides the postgres_* parts when set

    # Redis/Celery
    redis_url: str = "redis://redis:6379/0"
    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/0"

    # Storage
    storage_root: str = "/data/assets"
    max_file_size_bytes: int = 10 * 1024 * 1024

    # Queue / workers
    queue_backend: str = "celery"  # celery or memory
    worker_concurrency: int = 4
    lease_timeout_seconds: float = 300.0
    job_max_attempts: int = 3
    job_backoff_seconds: float = 2.0
    version_conflict_retries: int = 10
    version_conflict_backoff_seconds: float = 0.05

    # Logging
    log_level: str = "INFO"

    # Environment
    environment: str = "development"

    @property
    def database_url(self) -> str:
        """Build database URL."""
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
