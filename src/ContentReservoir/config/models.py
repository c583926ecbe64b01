"""
Pydantic v2 models for reservoir and channel configuration.

Provides strict, typed documents for everything persisted as JSON:
- Reservoir-wide settings (``.res-config.json``)
- Channel creation input and partial updates
- Stored channel documents (``channels/<id>/channel.json``)

All models use extra="forbid". Input normalisation (trimmed names, blank
``id_field`` dropped, deduplicated lock names) happens in validators so the
stored form is always canonical.
"""

from __future__ import annotations

import math
from typing import Any, ClassVar, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..fetch_params import normalize_fetch_params

__all__ = [
    "GLOBAL_LOCK_NAME",
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "DEFAULT_DUPLICATE_STRATEGY",
    "BUILTIN_FETCH_METHODS",
    "DuplicateStrategy",
    "normalize_lock_name",
    "normalize_locks",
    "normalize_id_field",
    "normalize_duplicate_strategy",
    "normalize_refresh_interval",
    "ReservoirConfig",
    "ChannelConfig",
    "ChannelUpdate",
    "Channel",
]

GLOBAL_LOCK_NAME = "global"
DEFAULT_REFRESH_INTERVAL_SECONDS = 24 * 60 * 60
DEFAULT_DUPLICATE_STRATEGY = "keep-both"
BUILTIN_FETCH_METHODS = ("rss", "web_page")

DuplicateStrategy = Literal["overwrite", "keep-both"]

_LOCK_SEPARATOR = ","


# ============================================================================
# Normalisers shared by models and engines
# ============================================================================


def normalize_lock_name(lock_name: Optional[str]) -> str:
    """Trim ``lock_name``; blank or missing becomes :data:`GLOBAL_LOCK_NAME`.

    Raises:
        ValueError: If the name contains a comma.
    """

    if lock_name is None:
        return GLOBAL_LOCK_NAME
    normalized = lock_name.strip()
    if _LOCK_SEPARATOR in normalized:
        raise ValueError("Invalid lock name: commas are not allowed")
    return normalized or GLOBAL_LOCK_NAME


def normalize_locks(lock_names: Optional[Iterable[Any]], *, validate_names: bool = False) -> List[str]:
    """Return trimmed, deduplicated lock names preserving first-seen order.

    Args:
        lock_names: Candidate names; non-strings and blanks are skipped.
        validate_names: Raise on commas instead of dropping those names.
    """

    if not lock_names or isinstance(lock_names, str):
        return []
    seen: Dict[str, None] = {}
    for raw in lock_names:
        if not isinstance(raw, str):
            continue
        name = raw.strip()
        if not name:
            continue
        if _LOCK_SEPARATOR in name:
            if validate_names:
                raise ValueError("Invalid lock name: commas are not allowed")
            continue
        seen.setdefault(name, None)
    return list(seen)


def normalize_id_field(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def normalize_duplicate_strategy(value: Any) -> str:
    """Validate ``value`` as a duplicate strategy; ``None`` yields the default."""

    if value is None:
        return DEFAULT_DUPLICATE_STRATEGY
    if value in ("overwrite", "keep-both"):
        return value
    raise ValueError(
        f"Invalid duplicate strategy '{value}'. Expected 'overwrite' or 'keep-both'."
    )


def normalize_refresh_interval(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_REFRESH_INTERVAL_SECONDS
    if not math.isfinite(value) or value <= 0:
        return DEFAULT_REFRESH_INTERVAL_SECONDS
    return int(value)


def _validate_rate_limit(value: Optional[int]) -> Optional[int]:
    if value is not None and value < 0:
        raise ValueError("rate_limit_interval must be >= 0")
    return value


def _validate_required_text(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{label} must not be empty")
    return normalized


# ============================================================================
# Reservoir configuration
# ============================================================================


class ReservoirConfig(BaseModel):
    """Reservoir-wide configuration stored in ``.res-config.json``."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_size_mb: Optional[float] = Field(
        default=None, description="Size budget for channel content in MiB"
    )

    @field_validator("max_size_mb")
    @classmethod
    def validate_max_size(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("max_size_mb must be a finite number")
        return v

    @property
    def max_bytes(self) -> Optional[int]:
        """Budget in bytes, or ``None`` when eviction is disabled."""

        if self.max_size_mb is None or self.max_size_mb <= 0:
            return None
        return int(self.max_size_mb * 1024 * 1024)


# ============================================================================
# Channel configuration
# ============================================================================


class ChannelConfig(BaseModel):
    """Input accepted when creating a channel."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: str = Field(description="Human-readable channel name; the id is its slug")
    fetch_method: str = Field(description="rss, web_page, or a registered custom fetcher")
    fetch_params: Dict[str, str] = Field(default_factory=dict)
    rate_limit_interval: Optional[int] = Field(default=None, description="Seconds")
    refresh_interval: int = Field(default=DEFAULT_REFRESH_INTERVAL_SECONDS, description="Seconds")
    id_field: Optional[str] = None
    duplicate_strategy: DuplicateStrategy = DEFAULT_DUPLICATE_STRATEGY
    retained_locks: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_required_text(v, "name")

    @field_validator("fetch_method")
    @classmethod
    def validate_fetch_method(cls, v: str) -> str:
        return _validate_required_text(v, "fetch_method")

    @field_validator("fetch_params", mode="before")
    @classmethod
    def validate_fetch_params(cls, v: Any) -> Dict[str, str]:
        return normalize_fetch_params(v)

    @field_validator("refresh_interval", mode="before")
    @classmethod
    def validate_refresh_interval(cls, v: Any) -> int:
        return normalize_refresh_interval(v)

    @field_validator("rate_limit_interval")
    @classmethod
    def validate_rate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _validate_rate_limit(v)

    @field_validator("id_field", mode="before")
    @classmethod
    def validate_id_field(cls, v: Any) -> Optional[str]:
        return normalize_id_field(v)

    @field_validator("duplicate_strategy", mode="before")
    @classmethod
    def validate_duplicate_strategy(cls, v: Any) -> str:
        return normalize_duplicate_strategy(v)

    @field_validator("retained_locks", mode="before")
    @classmethod
    def validate_retained_locks(cls, v: Any) -> List[str]:
        return normalize_locks(v, validate_names=True)


class ChannelUpdate(BaseModel):
    """Partial channel update; only explicitly provided fields are merged."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: Optional[str] = None
    fetch_method: Optional[str] = None
    fetch_params: Optional[Dict[str, str]] = None
    rate_limit_interval: Optional[int] = None
    refresh_interval: Optional[int] = None
    id_field: Optional[str] = None
    duplicate_strategy: Optional[DuplicateStrategy] = None
    retained_locks: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _validate_required_text(v, "name")

    @field_validator("fetch_method")
    @classmethod
    def validate_fetch_method(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _validate_required_text(v, "fetch_method")

    @field_validator("fetch_params", mode="before")
    @classmethod
    def validate_fetch_params(cls, v: Any) -> Optional[Dict[str, str]]:
        return None if v is None else normalize_fetch_params(v)

    @field_validator("rate_limit_interval")
    @classmethod
    def validate_rate_limit(cls, v: Optional[int]) -> Optional[int]:
        return _validate_rate_limit(v)

    @field_validator("id_field", mode="before")
    @classmethod
    def validate_id_field(cls, v: Any) -> Optional[str]:
        return normalize_id_field(v)

    @field_validator("duplicate_strategy", mode="before")
    @classmethod
    def validate_duplicate_strategy(cls, v: Any) -> Optional[str]:
        return None if v is None else normalize_duplicate_strategy(v)

    @field_validator("retained_locks", mode="before")
    @classmethod
    def validate_retained_locks(cls, v: Any) -> Optional[List[str]]:
        return None if v is None else normalize_locks(v, validate_names=True)

    def changes(self) -> Dict[str, Any]:
        """Explicitly provided fields, minus ``None`` for required ones."""

        provided = self.model_dump(exclude_unset=True)
        for required in ("name", "fetch_method", "fetch_params", "duplicate_strategy", "retained_locks"):
            if provided.get(required, "") is None:
                provided.pop(required)
        if "refresh_interval" in provided:
            provided["refresh_interval"] = normalize_refresh_interval(provided["refresh_interval"])
        return provided


class Channel(ChannelConfig):
    """Stored channel document."""

    id: str
    created_at: str

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

