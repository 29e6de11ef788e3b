"""
Shared configuration management for the office policy engine.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POLICY_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    log_format: str = Field(default="json", pattern="^(json|console)$")

    # Persistence and caching (in-memory stores are used when unset)
    postgres_dsn: Optional[str] = Field(default=None)
    redis_url: Optional[str] = Field(default=None)
    entitlement_cache_ttl_seconds: int = Field(default=300, ge=1)

    # External token verifier
    token_verifier_url: str = Field(default="")
    token_verifier_api_key: str = Field(default="")
    token_verifier_timeout: float = Field(default=10.0, gt=0)
    use_mock_token_verifier: bool = Field(default=False)

    # Grant expiration sweep
    expiration_sweep_interval_seconds: int = Field(default=3600, ge=1)
    enable_expiration_sweeper: bool = Field(default=True)


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
