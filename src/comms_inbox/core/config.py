"""
Comms Inbox Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from comms_inbox.core.config import get_settings

    settings = get_settings()
    interval = settings.sweep_interval_seconds

Data Paths:
    All data is stored in {instance_root}/cache/:
    - cache/inbox.db: SQLite document store used by the CLI

Environment Variables:
    COMMS_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    COMMS_DEBUG: Legacy debug flag (enables DEBUG level if set)
    COMMS_LOG_JSON: Output logs as JSON
    COMMS_INSTANCE_ROOT: Instance root directory override
    COMMS_DB_PATH: SQLite document store path override
    COMMS_SWEEP_INTERVAL_SECONDS: Triage sweep cadence (default 60)
    COMMS_OPERATION_TIMEOUT_SECONDS: Per store operation timeout (default 10)
    COMMS_MAX_CONCURRENCY: Concurrent store operations per round (default 64)
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Project root directory, or None if not found
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent

    return None


def _find_project_env_file() -> Path | None:
    """Return the project .env file if one exists next to pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_project_root() or Path.cwd()


class InboxSettings(BaseSettings):
    """
    Comms inbox configuration settings with validation.

    Environment variables are automatically loaded with the COMMS_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMMS_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for inbox components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    db_path_override: Optional[Path] = Field(
        default=None,
        validation_alias="COMMS_DB_PATH",
        description="Explicit SQLite document store path",
    )

    # =========================================================================
    # Dispatch & Triage
    # =========================================================================

    sweep_interval_seconds: float = Field(
        default=60.0,
        description="Seconds between triage sweeps",
    )

    operation_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to each per-recipient or per-entry operation",
    )

    max_concurrency: int = Field(
        default=64,
        description="Maximum store operations running at once within one round",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("sweep_interval_seconds", "operation_timeout_seconds", "max_concurrency")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy COMMS_DEBUG.

        Priority:
        1. Explicit COMMS_LOG_LEVEL
        2. COMMS_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the SQLite document store."""
        if self.db_path_override is not None:
            return self.db_path_override
        return self.cache_dir / "inbox.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> InboxSettings:
    """
    Get the singleton settings instance.

    The settings are validated at first access.
    """
    return InboxSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"
