"""Configuration management using pydantic-settings."""
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables (FRESHNESS_*)."""

    # Cache settings
    cache_enabled: bool = True
    cache_prefix: str = "@freshness:"
    default_ttl_seconds: float = 300.0
    stale_while_revalidate: bool = True

    # Storage backend
    storage_backend: Literal["memory", "sql"] = "memory"
    cache_db_url: str = "sqlite:///./freshness_cache.db"

    # Batching and pagination
    pool_concurrency: int = 5
    default_page_size: int = 10
    max_page_size: int = 50

    # Upstream API
    api_base_url: str = "https://jsonplaceholder.typicode.com"
    request_timeout_seconds: float = 10.0

    # Retry policy for upstream requests
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    class Config:
        env_prefix = "FRESHNESS_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
