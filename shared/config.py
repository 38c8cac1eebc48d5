"""
Shared configuration management for the Tour Explorer access layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TOUR_API_BASE_URL = "https://apis.data.go.kr/B551011/KorService2"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOUR_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream tour data API
    api_key: str = Field(default="")
    api_base_url: str = Field(default=DEFAULT_TOUR_API_BASE_URL)
    api_timeout_seconds: float = Field(default=10.0, gt=0)
    api_max_retries: int = Field(default=3, ge=1)
    api_retry_delay_seconds: float = Field(default=1.0, ge=0)

    # In-memory response cache
    cache_default_ttl_seconds: Optional[float] = Field(default=None)
    cache_max_size: Optional[int] = Field(default=500, ge=1)
    cache_enable_stats_logging: bool = Field(default=False)

    # Per-route TTLs
    search_cache_ttl_seconds: float = Field(default=300)
    nearby_cache_ttl_seconds: float = Field(default=60)
    detail_cache_ttl_seconds: float = Field(default=600)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
