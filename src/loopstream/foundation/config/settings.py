"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from loopstream.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.stream.read_chunk_size
    4096
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # LOOPSTREAM_STREAM_READ_CHUNK_SIZE=65536
    # LOOPSTREAM_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamSettings(BaseSettings):
    """Stream I/O sizing defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LOOPSTREAM_STREAM_",
        extra="ignore",
    )

    read_chunk_size: PositiveInt = Field(default=4096, description="Max bytes read per readiness notification")
    write_soft_limit: PositiveInt = Field(default=2048, description="Write backlog size that signals backpressure")
    pump_chunk_size: PositiveInt = Field(default=8192, description="Bytes requested per pull from a pump source")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOOPSTREAM_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class LoopstreamSettings(BaseSettings):
    """Root settings for loopstream.

    Loads configuration from environment variables with LOOPSTREAM_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        LOOPSTREAM_DEBUG=true
        LOOPSTREAM_STREAM_WRITE_SOFT_LIMIT=65536
        LOOPSTREAM_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="LOOPSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings (loaded with LOOPSTREAM_STREAM_, LOOPSTREAM_LOG_)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> LoopstreamSettings:
    """Get the global settings instance (cached)."""
    return LoopstreamSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
