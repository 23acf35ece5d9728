"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Article store
    articles_dir: str = "articles"
    max_content_bytes: int = 5 * 1024 * 1024

    # Search index (secondary, relational)
    database_url: str = "sqlite+aiosqlite:///./article_index.db"

    # Cache
    redis_url: str | None = None
    cache_ttl_seconds: int = 60

    # Rate limiting (write operations per window)
    write_rate_limit: int = 10
    write_rate_window_ms: int = 60_000

    # Background sync
    sync_workers: int = 1
    sync_retained_jobs: int = 1000

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
