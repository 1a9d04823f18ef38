"""
Shared configuration management for the decision engine.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="DECISIONS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Bundle source for the decisions service
    bundle_path: Optional[str] = Field(default=None)
    suggested_refresh_ms: int = Field(default=60000)
    max_allocation_count: int = Field(default=1000)

    # Identification and auth shared by the service and its clients
    api_key: Optional[str] = Field(default=None)
    org_id: str = Field(default="org_local")
    project_id: str = Field(default="proj_local")

    # Decision client
    decisions_service_url: str = Field(default="http://localhost:8020")
    resolve_timeout_ms: int = Field(default=5000)
    decide_timeout_ms: int = Field(default=100)
    decide_batch_timeout_ms: int = Field(default=200)

    # Caller-owned decision cache
    decision_cache_ttl_seconds: float = Field(default=3600.0)
    decision_cache_max_entries: int = Field(default=100)


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
