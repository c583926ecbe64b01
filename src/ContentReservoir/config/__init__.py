"""
Reservoir Configuration Package

Public API for reservoir and channel configuration documents.

Example:
    from ContentReservoir.config import ChannelConfig, validate_model

    config = validate_model(ChannelConfig, {"name": "Hacker News", "fetch_method": "rss"})
"""

from .loader import (
    CONFIG_FILE,
    load_reservoir_config,
    migrate_channel_document,
    save_reservoir_config,
    validate_model,
)
from .models import (
    BUILTIN_FETCH_METHODS,
    DEFAULT_DUPLICATE_STRATEGY,
    DEFAULT_REFRESH_INTERVAL_SECONDS,
    GLOBAL_LOCK_NAME,
    Channel,
    ChannelConfig,
    ChannelUpdate,
    DuplicateStrategy,
    ReservoirConfig,
    normalize_duplicate_strategy,
    normalize_id_field,
    normalize_lock_name,
    normalize_locks,
    normalize_refresh_interval,
)

__all__ = [
    # Models
    "ReservoirConfig",
    "ChannelConfig",
    "ChannelUpdate",
    "Channel",
    "DuplicateStrategy",
    # Constants
    "GLOBAL_LOCK_NAME",
    "DEFAULT_REFRESH_INTERVAL_SECONDS",
    "DEFAULT_DUPLICATE_STRATEGY",
    "BUILTIN_FETCH_METHODS",
    "CONFIG_FILE",
    # Normalisers
    "normalize_lock_name",
    "normalize_locks",
    "normalize_id_field",
    "normalize_duplicate_strategy",
    "normalize_refresh_interval",
    # Loading/validation
    "validate_model",
    "load_reservoir_config",
    "save_reservoir_config",
    "migrate_channel_document",
]
