"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Crawler
    CRAWLER_USER_AGENT: str = "SitemapCrawler/1.0"
    CRAWLER_MAX_CONCURRENCY: int = 50   # Upper bound accepted from a crawl request
    CRAWLER_VERIFY_SSL: bool = True

    # Shared HTTP client
    HTTP_MAX_CONNECTIONS: int = 100
    HTTP_MAX_KEEPALIVE: int = 20

    # Sitemap discovery
    SITEMAP_REQUEST_TIMEOUT: float = 30.0   # seconds
    SITEMAP_MAX_INDEX_DEPTH: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()
