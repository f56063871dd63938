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

    # Metrics -- written as a Prometheus textfile after each run when set
    METRICS_TEXTFILE_PATH: str = ""

    # HubSpot OAuth app credentials
    HUBSPOT_CID: str = ""
    HUBSPOT_CS: str = ""

    # HubSpot API
    HUBSPOT_API_BASE: str = "https://api.hubapi.com"
    HUBSPOT_REQUEST_TIMEOUT: float = 30.0

    # Account store (JSON domain document)
    ACCOUNT_STORE_PATH: str = "domain.json"

    # Goal sink -- actions are only logged when no endpoint is set
    GOAL_ENDPOINT_URL: str = ""
    GOAL_API_KEY: str = ""

    # Sync passes, comma separated, run in fixed order
    SYNC_PASSES: str = "companies,contacts,meetings"
    SYNC_DRY_RUN: bool = False

    # Pagination
    SYNC_PAGE_SIZE: int = 100
    SYNC_CURSOR_CEILING: int = 9900

    # Page fetch retry
    FETCH_MAX_ATTEMPTS: int = 5
    FETCH_BACKOFF_BASE_SECONDS: float = 5.0

    # Action queue
    QUEUE_FLUSH_THRESHOLD: int = 2000
    SINK_MAX_ATTEMPTS: int = 3

    def enabled_passes(self) -> list[str]:
        """Return the configured pass names, normalized and de-duplicated.

        Order follows SYNC_PASSES; unknown names are left for the caller
        to reject so the error names the offending value.
        """
        names: list[str] = []
        for raw in self.SYNC_PASSES.split(","):
            name = raw.strip().lower()
            if name and name not in names:
                names.append(name)
        return names


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
