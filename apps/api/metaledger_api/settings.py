"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "metaledger"
    postgres_password: str = "metaledger_dev_password"
    postgres_db: str = "metaledger"
    postgres_port: int = 5432

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # API
    api_port: int = 8000
    secret_key: str = "dev-secret-key-change-in-production"
    environment: str = "development"
    api_host: str = "0.0.0.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Approval
    metadata_approval_enabled: bool = True

    # Bulk operations
    bulk_preview_ttl_seconds: int = 600  # 10 minutes
    bulk_preview_store: str = "database"  # database, redis
    bulk_chunk_size: int = 100

    # Confidence suppression (ai population mode only)
    ai_confidence_default_threshold: float = 0.60
    ai_confidence_thresholds: dict[str, float] = {}

    # Follow-on suggestion jobs
    suggestion_dispatch_enabled: bool = True
    suggestion_task_name: str = "metaledger_worker.tasks.generate_metadata_suggestions"
    suggestion_queue: str = "metadata_events"
    suggestion_min_confidence: float = 0.90
    suggestion_pipeline_task: Optional[str] = None

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.secret_key == "dev-secret-key-change-in-production":
                raise ValueError(
                    "SECRET_KEY must be set in production. "
                    "API key digests depend on it."
                )
            if self.bulk_preview_store not in ("database", "redis"):
                raise ValueError(
                    f"BULK_PREVIEW_STORE must be 'database' or 'redis', got {self.bulk_preview_store!r}"
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
