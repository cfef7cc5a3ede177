"""Configuration management for the resource server."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreConfig(BaseModel):
    """Entity store configuration."""

    seed_on_startup: bool = Field(
        default=True, description="Load the deterministic seed dataset at startup"
    )
    delete_policy: Literal["nullify", "cascade"] = Field(
        default="nullify",
        description="What happens to orders referencing a deleted customer",
    )


class QueryConfig(BaseModel):
    """Query engine limits."""

    max_top: int = Field(default=10000, ge=1, description="Largest accepted $top value")
    max_filter_depth: int = Field(
        default=32, ge=1, le=64, description="Maximum nesting depth of a $filter expression"
    )
    max_filter_terms: int = Field(
        default=1000, ge=1, le=100000, description="Maximum number of operands in a $filter"
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(
        default="resource_server", description="Service name for tracing"
    )


class Config(BaseSettings):
    """Main configuration for the resource server."""

    model_config = SettingsConfigDict(
        env_prefix="RESOURCE_SERVER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    store: StoreConfig = Field(default_factory=StoreConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
