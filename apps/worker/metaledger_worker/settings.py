"""Worker settings; shares database, Redis and suggestion keys with the API."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the suggestion worker."""

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

    # Redis (broker + result backend)
    redis_url: str = "redis://localhost:6379/0"

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Suggestion job
    suggestion_queue: str = "metadata_events"
    suggestion_min_confidence: float = 0.90
    suggestion_pipeline_task: Optional[str] = None  # downstream task fed with eligible candidates
    suggestion_max_retries: int = 3

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Refuse configurations the suggestion job cannot run with."""
        if not 0.0 <= self.suggestion_min_confidence <= 1.0:
            raise ValueError(
                f"SUGGESTION_MIN_CONFIDENCE must be within [0, 1], got {self.suggestion_min_confidence}"
            )
        env = self.environment.lower()
        if env not in ("development", "test", "dev") and not self.database_url:
            raise ValueError("DATABASE_URL is required outside development.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
