"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "catalog-sync-service"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "catalog"
    postgres_password: str = ""
    postgres_db: str = "catalog_sync"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous PostgreSQL connection URL (for Alembic)."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Embeddings (OpenAI / sentence-transformers)
    # -------------------------------------------------------------------------
    openai_api_key: str = ""
    embedding_backend: Literal["openai", "sentence-transformers"] = "openai"
    embedding_model: str = "text-embedding-ada-002"
    embedding_dimension: int = 1536
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    vision_model: str = "gpt-4o"
    image_description_max_tokens: int = 200

    # -------------------------------------------------------------------------
    # Commerce Source (Shopify Admin REST API)
    # -------------------------------------------------------------------------
    commerce_api_version: str = "2023-10"
    commerce_page_size: int = Field(default=250, ge=1, le=250)
    commerce_product_status: Literal["active", "draft", "archived", "any"] = "active"
    commerce_max_retries: int = 3

    # -------------------------------------------------------------------------
    # Sync Pipeline
    # -------------------------------------------------------------------------
    sync_batch_size: int = 10
    index_batch_size: int = 5
    import_fail_fast: bool = False
    job_registry_backend: Literal["memory", "redis"] = "memory"
    job_error_retention_seconds: float = 10.0
    job_max_runtime_seconds: int = 3600
    external_call_timeout: float = 30.0

    # -------------------------------------------------------------------------
    # Sync Worker Settings
    # -------------------------------------------------------------------------
    sync_catalog_interval_minutes: int = 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
