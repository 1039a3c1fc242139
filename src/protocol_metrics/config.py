"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
aggregation engine, loading and validating environment variables at
startup. Protocol address tables are not configuration; they live in
``protocol_metrics.networks``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from protocol_metrics.networks import PROTOCOLS

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite:///protocol_metrics.db",
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+psycopg://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or SQLite connection string")
        return v


class RpcSettings(BaseSettings):
    """JSON-RPC settings for contract reads."""

    model_config = SettingsConfigDict(env_prefix="RPC_", extra="ignore")

    url: str = Field(
        default="https://eth.llamarpc.com",
        alias="RPC_URL",
        description="Primary JSON-RPC endpoint",
    )
    fallback_url: str | None = Field(
        default=None,
        alias="RPC_FALLBACK_URL",
        description="Fallback JSON-RPC endpoint",
    )
    timeout_seconds: int = Field(
        default=30,
        alias="RPC_TIMEOUT_SECONDS",
        ge=1,
        le=600,
        description="Per-request timeout for contract reads",
    )

    @field_validator("url", "fallback_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class IndexerSettings(BaseSettings):
    """Which protocol deployment this process aggregates."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    protocol: str = Field(
        default="aave-v2",
        alias="INDEXER_PROTOCOL",
        description="Protocol slug (see protocol_metrics.networks.PROTOCOLS)",
    )
    network: str = Field(
        default="mainnet",
        alias="INDEXER_NETWORK",
        description="Network identifier the events come from",
    )

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        if v not in PROTOCOLS:
            raise ValueError(f"INDEXER_PROTOCOL must be one of: {', '.join(sorted(PROTOCOLS))}")
        return v


class Settings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rpc: RpcSettings = Field(
        default_factory=lambda: RpcSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    indexer: IndexerSettings = Field(
        default_factory=lambda: IndexerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "rpc": {
                "url": self.rpc.url,
                "fallback_url": self.rpc.fallback_url or "(not set)",
                "timeout_seconds": str(self.rpc.timeout_seconds),
            },
            "indexer": {
                "protocol": self.indexer.protocol,
                "network": self.indexer.network,
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
