"""
Shared configuration management for the Usernet manifest service.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ACCESS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Manifest storage
    manifest_dir: str = Field(default="manifest")
    default_service: str = Field(default="_default")

    # Request context
    country_header: str = Field(default="X-Country-Code")
    country_query_param: str = Field(default="country")

    # Observability
    enable_metrics: bool = Field(default=True)

    # CORS
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])


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
