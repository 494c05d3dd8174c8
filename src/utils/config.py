"""Centralized configuration management for EVE Asset Tree.

This module provides application-level configuration from environment variables.

Features:
- Environment variable support via .env files
- Fallback priority: .env → hardcoded defaults
- Type-safe configuration using Pydantic
- Lazily created, lock-guarded instance for the composition root

Usage:
    from utils.config import get_config

    config = get_config()
    limiter = RateLimiter(
        max_tokens=config.esi.rate_limit_max_tokens,
        refill_rate=config.esi.rate_limit_refill_rate,
    )
"""

from __future__ import annotations

import threading
import tomllib
from datetime import UTC, datetime
from logging import getLogger
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = getLogger(__name__)

_PROJECT_ROOT = Path(__file__).parent.parent.parent


def _read_pyproject() -> dict:
    """Read pyproject.toml and extract project name and version."""
    pyproject_path = _PROJECT_ROOT / "pyproject.toml"
    try:
        with open(pyproject_path, "rb") as f:
            project = tomllib.load(f).get("project", {})
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.debug("Could not read pyproject.toml: %s", e)
        project = {}
    return {
        "name": project.get("name", "eve-asset-tree"),
        "version": project.get("version", "?.?.?"),
    }


# Read project metadata once at module load
_PROJECT_METADATA = _read_pyproject()


class ESIConfig(BaseSettings):
    """EVE ESI (EVE Swagger Interface) network configuration."""

    esi_base_url: str = Field(
        default="https://esi.evetech.net/latest",
        description="Base URL for ESI API endpoints",
    )
    datasource: Literal["tranquility", "singularity"] = Field(
        default="tranquility",
        description="EVE server datasource (tranquility=live, singularity=test)",
    )
    compatibility_date: str | None = Field(
        default="2025-11-06",
        description="ESI compatibility date (YYYY-MM-DD format) for X-Compatibility-Date header",
    )

    # Rate limiting (process-wide token bucket)
    rate_limit_max_tokens: int = Field(
        default=20,
        description="Token bucket capacity shared by every outbound request",
        ge=1,
    )
    rate_limit_refill_rate: float = Field(
        default=10.0,
        description="Tokens added to the bucket per second",
        gt=0,
    )
    rate_limit_poll_interval: float = Field(
        default=0.1,
        description="Seconds between permission polls while the bucket is empty",
        gt=0,
    )

    # Retry policy
    retry_timeouts: list[float] = Field(
        default=[1.5, 5.0, 10.0],
        description="Per-attempt timeout budget in seconds (one entry per attempt)",
        min_length=1,
    )
    retry_base_delay: float = Field(
        default=0.5,
        description="Base delay for exponential backoff between attempts",
        ge=0,
    )

    # Pagination and batching
    page_concurrency: int = Field(
        default=3,
        description="Number of asset pages fetched concurrently per round",
        ge=1,
    )
    page_round_delay: float = Field(
        default=0.1,
        description="Pause in seconds between page rounds",
        ge=0,
    )
    location_batch_size: int = Field(
        default=5,
        description="Root locations resolved concurrently per batch",
        ge=3,
        le=10,
    )
    owner_batch_size: int = Field(
        default=3,
        description="Owners refreshed concurrently per batch",
        ge=3,
        le=10,
    )

    model_config = SettingsConfigDict(
        env_prefix="ESI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("compatibility_date")
    @classmethod
    def validate_compatibility_date(cls, v: str | None) -> str | None:
        """Validate compatibility date format and ensure it's not in the future."""
        if v is None or v == "":
            return None

        try:
            parsed_date = datetime.strptime(v, "%Y-%m-%d").replace(tzinfo=UTC).date()
        except ValueError as e:
            raise ValueError(
                f"compatibility_date must be a valid date in YYYY-MM-DD format: {e}"
            ) from e

        today = datetime.now(UTC).date()
        if parsed_date > today:
            raise ValueError(
                f"compatibility_date cannot be in the future. Got {v}, today is {today}"
            )

        return v


class CacheConfig(BaseSettings):
    """Structure and asset snapshot cache configuration."""

    structure_cache_dir: str = Field(
        default="cache/structures",
        description="Directory for per-structure cache files (relative to user_data_dir)",
    )
    structure_ttl_days: float = Field(
        default=7,
        description="Days a cached structure stays valid",
        gt=0,
    )
    memory_capacity: int = Field(
        default=512,
        description="Maximum number of entries held in the in-memory tier",
        ge=1,
    )
    asset_snapshot_dir: str = Field(
        default="cache/assets",
        description="Directory for asset tree snapshots (relative to user_data_dir)",
    )
    asset_snapshot_ttl_hours: float = Field(
        default=8,
        description="Hours an asset tree snapshot is served without refetching",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def structure_cache_path(self) -> Path:
        """Resolved structure cache directory."""
        return _resolve_data_path(self.structure_cache_dir)

    @property
    def asset_snapshot_path(self) -> Path:
        """Resolved asset snapshot directory."""
        return _resolve_data_path(self.asset_snapshot_dir)


class AppConfig(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        default_factory=lambda: _PROJECT_METADATA["name"],
        description="Application name (from pyproject.toml)",
    )
    version: str = Field(
        default_factory=lambda: _PROJECT_METADATA["version"],
        description="Application version (from pyproject.toml)",
    )
    user_agent: str = Field(
        default="",
        description="HTTP User-Agent header (auto-generated if empty)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    data_dir: Path = Field(
        default_factory=lambda: _PROJECT_ROOT / "data",
        description="Writable data directory for caches and logs",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def user_data_dir(self) -> Path:
        """Get user data directory for writable files.

        Returns:
            Path to directory for caches, logs, and other writable data.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir

    @property
    def computed_user_agent(self) -> str:
        """Generate User-Agent header if not explicitly set."""
        if self.user_agent:
            return self.user_agent
        return f"{self.name}/{self.version}"


def _resolve_data_path(value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return get_config().app.user_data_dir / path


class Config:
    """Main configuration container."""

    def __init__(self) -> None:
        """Initialize configuration from environment and defaults."""
        self.app = AppConfig()
        self.esi = ESIConfig()
        self.cache = CacheConfig()

    def reload(self) -> None:
        """Reload configuration from environment variables."""
        self.__init__()

    def __repr__(self) -> str:
        return f"Config(\n  app={self.app},\n  esi={self.esi},\n  cache={self.cache}\n)"


_config_instance: Config | None = None
_config_lock = threading.Lock()


def get_config(config: Config | None = None) -> Config:
    """Get the configuration instance (lazy initialization).

    Args:
        config: Optional config instance to install instead of the default.
                Useful for dependency injection and tests.

    Returns:
        Config instance
    """
    global _config_instance  # noqa: PLW0603

    if config is not None:
        with _config_lock:
            _config_instance = config
        return _config_instance

    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = Config()

    assert _config_instance is not None
    return _config_instance


def reload_config() -> Config:
    """Reload configuration from environment.

    Returns:
        Reloaded Config instance
    """
    global _config_instance  # noqa: PLW0603
    with _config_lock:
        _config_instance = Config()
    return _config_instance


def reset_config() -> None:
    """Reset the config instance.

    Primarily for testing.
    """
    global _config_instance  # noqa: PLW0603
    with _config_lock:
        _config_instance = None
