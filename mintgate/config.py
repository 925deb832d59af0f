"""Configuration loading for the mintgate traceability service.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Store configuration
    store_sqlite_path: str = Field(
        default="./data/mintgate.db",
        description="SQLite database file path for batches, products and mints",
    )
    store_pool_size: int = Field(
        default=5,
        description="Number of pooled SQLite connections",
    )

    # Model catalog configuration
    catalog_backend: Literal["sqlite", "http"] = Field(
        default="sqlite",
        description="Where model numbers are looked up",
    )
    catalog_api_url: str = Field(
        default="http://localhost:8081",
        description="Model catalog API endpoint URL",
    )
    catalog_api_key: str = Field(
        default="",
        description="Model catalog API authentication key",
    )
    catalog_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for model catalog requests in seconds",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    @field_validator("store_pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        """Ensure pool size is positive."""
        if v <= 0:
            raise ValueError("store_pool_size must be positive")
        return v

    @field_validator("catalog_timeout_seconds")
    @classmethod
    def validate_catalog_timeout(cls, v: float) -> float:
        """Ensure catalog timeout is positive."""
        if v <= 0:
            raise ValueError("catalog_timeout_seconds must be positive")
        return v

    @field_validator("catalog_api_url")
    @classmethod
    def validate_catalog_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("catalog_api_url must be an http(s) URL")
        return v.rstrip("/")


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
