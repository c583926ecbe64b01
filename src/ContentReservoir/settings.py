"""Process-wide settings for reservoir commands and the background fetcher.

Values come from ``RES_*`` environment variables through ``pydantic-settings``.
They tune behaviour that is not part of any reservoir's durable state: log
verbosity, ledger lock timing, the scheduler tick, HTTP client defaults and the
directory holding registered custom fetchers.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "ReservoirSettings",
    "get_settings",
    "resolve_user_config_dir",
    "resolve_custom_fetchers_dir",
]

USER_CONFIG_DIR_NAME = "res"
CUSTOM_FETCHERS_DIR = "fetchers"
_LOG_LEVELS = {"error", "info", "debug", "silent"}


class ReservoirSettings(BaseSettings):
    """Environment-derived knobs shared by every reservoir in the process."""

    log_level: str = Field(default="info", description="error | info | debug | silent")
    lock_timeout: float = Field(default=10.0, description="Ledger lock wait budget (seconds)")
    lock_poll_interval: float = Field(default=0.01, description="Ledger lock retry delay")
    lock_use_soft: bool = Field(default=False, description="Use marker-file locks")
    tick_interval: float = Field(default=1.0, description="Scheduler tick (seconds)")
    fetchers_dir: Optional[Path] = Field(default=None, description="Custom fetcher directory")
    http_timeout: float = Field(default=30.0, description="Adapter HTTP timeout (seconds)")
    http_retries: int = Field(default=3, description="Adapter HTTP attempts")
    user_agent: str = Field(default="ContentReservoir/0.3 (+https://pypi.org/project/content-reservoir)")

    model_config = SettingsConfigDict(env_prefix="RES_", case_sensitive=False, extra="ignore")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        normalized = (value or "").strip().lower()
        return normalized if normalized in _LOG_LEVELS else "info"

    @field_validator("lock_timeout", "lock_poll_interval", "tick_interval", "http_timeout")
    @classmethod
    def validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("http_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        if value < 1:
            raise ValueError("http_retries must be >= 1")
        return value


def get_settings() -> ReservoirSettings:
    """Read settings from the current environment.

    Settings are rebuilt on every call so tests and long-lived processes observe
    environment changes without an explicit cache reset.
    """

    return ReservoirSettings()


def resolve_user_config_dir() -> Path:
    """Return the per-user configuration directory for reservoir tooling."""

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg_config_home:
        return Path(xdg_config_home) / USER_CONFIG_DIR_NAME
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA", "").strip()
        if app_data:
            return Path(app_data) / USER_CONFIG_DIR_NAME
    return Path.home() / ".config" / USER_CONFIG_DIR_NAME


def resolve_custom_fetchers_dir(settings: Optional[ReservoirSettings] = None) -> Path:
    """Return the directory holding registered custom fetcher executables."""

    settings = settings or get_settings()
    if settings.fetchers_dir is not None:
        return settings.fetchers_dir.expanduser()
    return resolve_user_config_dir() / CUSTOM_FETCHERS_DIR
