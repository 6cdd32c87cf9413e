"""
Shared configuration management for the eSIM diagnostics platform.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ESIM_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Subscription provider
    subscription_api_url: str = Field(default="http://localhost:8090")
    subscription_api_key: str = Field(default="")
    subscription_api_timeout: float = Field(default=10.0)

    # Generative model
    google_api_key: Optional[str] = Field(default=None)
    reasoner_model: str = Field(default="gemini-2.5-flash")
    reasoner_timeout: float = Field(default=30.0)

    # Diagnosis policy
    confidence_threshold: int = Field(default=80, ge=0, le=100)
    provisioning_threshold_minutes: int = Field(default=15, ge=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
