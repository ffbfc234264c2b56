"""
Configuration for the Azure Updates search service.
Settings are loaded from environment variables (prefix AZURE_UPDATES_) or .env.
"""

from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_ENDPOINT = "https://www.microsoft.com/releasecommunications/api/v2/azure"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Storage
    database_path: str = Field("~/.azure-updates/azure-updates.db", description="SQLite database path")

    # Upstream feed
    api_endpoint: str = Field(DEFAULT_API_ENDPOINT, description="Azure Updates API base URL")
    request_timeout: float = Field(30.0, gt=0, description="Upstream request timeout in seconds")
    page_size: int = Field(100, ge=1, le=1000, description="Records requested per upstream page")

    # Sync
    staleness_threshold_hours: float = Field(24, ge=1, description="Refresh when data is older than this")
    batch_size: int = Field(100, ge=1, le=1000, description="Records per write transaction")
    max_retries: int = Field(3, ge=0, le=10, description="Retry attempts per upstream request")
    retention_start_date: Optional[str] = Field(None, description="Drop updates older than YYYY-MM-DD")
    sync_on_startup: bool = Field(True, description="Sync at startup when data is stale")
    sync_interval_minutes: int = Field(60, ge=1, le=1440, description="Scheduled staleness check interval")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = Field("INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    log_dir: Optional[str] = Field(None, description="Directory for JSON log files")

    model_config = SettingsConfigDict(
        env_prefix="AZURE_UPDATES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_endpoint")
    @classmethod
    def validate_api_endpoint(cls, v: str) -> str:
        """Ensure the endpoint is an HTTP(S) URL."""
        if not v.startswith("http://") and not v.startswith("https://"):
            raise ValueError("API endpoint must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("retention_start_date")
    @classmethod
    def validate_retention_start_date(cls, v: Optional[str]) -> Optional[str]:
        """Retention start must be a calendar date (YYYY-MM-DD)."""
        if v in (None, ""):
            return None
        date.fromisoformat(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {', '.join(allowed)}")
        return v.upper()

    def sync_config(self) -> "SyncConfig":
        """Build the sync inputs consumed by the SyncController."""
        return SyncConfig(
            staleness_threshold_hours=self.staleness_threshold_hours,
            api_url=self.api_endpoint,
            batch_size=self.batch_size,
            max_retries=self.max_retries,
            retention_start_date=self.retention_start_date,
        )


@dataclass(frozen=True)
class SyncConfig:
    """Inputs the sync controller needs from the surrounding process."""
    staleness_threshold_hours: float = 24
    api_url: str = DEFAULT_API_ENDPOINT
    batch_size: int = 100
    max_retries: int = 3
    retention_start_date: Optional[str] = None


@lru_cache()
def get_settings() -> Settings:
    """Get settings instance (cached)."""
    return Settings()
