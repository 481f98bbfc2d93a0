"""Bridge settings loaded from environment variables.

Maps environment variables with prefix "GEOBRIDGE_":
- GEOBRIDGE_MAX_WORKERS -> max_workers
- GEOBRIDGE_PROGRESS_QUEUE_SIZE -> progress_queue_size
- GEOBRIDGE_GDAL_CONFIG -> gdal_config (JSON object, e.g. '{"GDAL_CACHEMAX": "256"}')
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.execution.progress import DEFAULT_QUEUE_SIZE

__all__ = ["BridgeSettings", "get_settings"]


class BridgeSettings(BaseSettings):
    """Configuration for the worker pool, progress queues and GDAL options.

    Attributes:
        max_workers: Worker pool size; None derives it from the CPU count
        progress_queue_size: Bound of each work item's progress queue
        gdal_config: GDAL configuration options applied at bridge start
    """

    max_workers: int | None = Field(None, ge=1, description="Worker pool size")
    progress_queue_size: int = Field(
        DEFAULT_QUEUE_SIZE, ge=1, description="Bound of each progress queue"
    )
    gdal_config: dict[str, str] = Field(
        default_factory=dict, description="GDAL configuration options"
    )

    model_config = SettingsConfigDict(
        env_prefix="GEOBRIDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )


@lru_cache
def get_settings() -> BridgeSettings:
    """Get cached settings instance."""
    return BridgeSettings()
