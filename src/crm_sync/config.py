"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # HubSpot accounts (source receives the catalog migration, mirror is kept aligned)
    HUBSPOT_BASE_URL: str = "https://api.hubapi.com"
    HUBSPOT_SOURCE_TOKEN: str = ""
    HUBSPOT_MIRROR_TOKEN: str = ""
    HUBSPOT_TIMEOUT: float = 30.0

    # Rick and Morty catalog
    CATALOG_BASE_URL: str = "https://rickandmortyapi.com/api"
    CATALOG_TIMEOUT: float = 10.0
    CATALOG_MAX_ID: int = 826

    # Remote call resilience
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY: float = 2.0  # seconds, doubled per attempt

    # Resolver policy: create when the existence-check search fails non-retryably
    SEARCH_FAILURE_FALLBACK_CREATE: bool = True

    # Synthetic contact emails
    EMAIL_DOMAIN: str = "rickandmorty.com"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
