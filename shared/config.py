"""
Shared configuration management for the asset registry access layer.
"""

from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="REGISTRY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="registry")

    # Listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4001)

    def is_default(self, field_name: str) -> bool:
        """Return True when a field still holds its documented default value."""
        field = type(self).model_fields[field_name]
        return getattr(self, field_name) == field.get_default(call_default_factory=True)


class RegistryConfig(BaseConfig):
    """Registry-specific configuration."""

    # Storage
    sink_type: str = Field(default="mem")

    # Organization
    organization_name: str = Field(default="local")
    organization_hostnames: List[str] = Field(
        default_factory=lambda: ["localhost", "127.0.0.1"]
    )

    # Security
    basic_auth_type: str = Field(default="key")
    basic_auth_key: str = Field(default="change_me")
    jwt_secret: str = Field(default="change_me")
    jwt_expires_in_seconds: int = Field(default=7 * 24 * 60 * 60)


def get_config(**overrides: Any) -> RegistryConfig:
    """Build the registry configuration from the environment plus explicit overrides."""
    return RegistryConfig(**overrides)
