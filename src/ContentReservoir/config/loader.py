# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.config.loader",
#   "purpose": "Reading, migrating and validating persisted configuration documents",
#   "sections": [
#     {"id": "validate-model", "name": "validate_model", "anchor": "function-validate-model", "kind": "function"},
#     {"id": "load-reservoir-config", "name": "load_reservoir_config", "anchor": "function-load-reservoir-config", "kind": "function"},
#     {"id": "save-reservoir-config", "name": "save_reservoir_config", "anchor": "function-save-reservoir-config", "kind": "function"},
#     {"id": "migrate-channel-document", "name": "migrate_channel_document", "anchor": "function-migrate-channel-document", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration loading for reservoirs and channels.

Channel documents written by older releases use camelCase keys, store params
under ``fetchArgs`` or a top-level ``url``, and may carry retired fields such as
``retentionStrategy``. :func:`migrate_channel_document` folds every historical
shape into the canonical snake_case form and reports whether the stored
document differs, so callers can rewrite it once.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import InvalidInputError
from ..io_utils import atomic_write_json, read_json
from ..fetch_params import normalize_fetch_params
from .models import (
    DEFAULT_DUPLICATE_STRATEGY,
    Channel,
    normalize_duplicate_strategy,
    normalize_id_field,
    normalize_locks,
    normalize_refresh_interval,
)

__all__ = [
    "CONFIG_FILE",
    "validate_model",
    "load_reservoir_config",
    "save_reservoir_config",
    "migrate_channel_document",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_FILE = ".res-config.json"

ModelT = TypeVar("ModelT", bound=BaseModel)

_CAMEL_KEYS = {
    "createdAt": "created_at",
    "fetchMethod": "fetch_method",
    "fetchParams": "fetch_params",
    "rateLimitInterval": "rate_limit_interval",
    "refreshInterval": "refresh_interval",
    "idField": "id_field",
    "duplicateStrategy": "duplicate_strategy",
    "retainedLocks": "retained_locks",
    "maxSizeMB": "max_size_mb",
}


def _describe_validation_error(exc: ValidationError) -> Tuple[str, Optional[str]]:
    first = exc.errors()[0]
    message = str(first.get("msg", "invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "")
    if location and location not in message:
        return f"{location}: {message}", location
    return message, location or None


def validate_model(model_cls: Type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` as ``model_cls``, raising :class:`InvalidInputError`."""

    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        message, location = _describe_validation_error(exc)
        raise InvalidInputError(message, field=location) from exc


def _camel_to_snake(raw: Dict[str, Any]) -> Dict[str, Any]:
    converted: Dict[str, Any] = {}
    for key, value in raw.items():
        target = _CAMEL_KEYS.get(key, key)
        if target == key:
            converted[key] = value
        else:
            converted.setdefault(target, value)
    return converted


def load_reservoir_config(root: Path) -> Dict[str, Any]:
    """Return the raw, key-migrated reservoir config document, or ``{}``."""

    raw = read_json(root / CONFIG_FILE, default={})
    if not isinstance(raw, dict):
        return {}
    return _camel_to_snake(raw)


def save_reservoir_config(root: Path, config: BaseModel) -> None:
    atomic_write_json(root / CONFIG_FILE, config.model_dump(mode="json", exclude_none=True))


def migrate_channel_document(raw: Any) -> Tuple[Optional[Channel], bool]:
    """Fold a stored channel document into canonical form.

    Args:
        raw: Parsed JSON from ``channel.json``.

    Returns:
        ``(channel, changed)``. ``channel`` is ``None`` when the document lacks
        an id or name; ``changed`` is ``True`` when the canonical document
        differs from what is stored.
    """

    if not isinstance(raw, dict):
        return None, False

    data = _camel_to_snake(raw)
    params_source = data.get("fetch_params")
    if params_source is None:
        params_source = data.get("fetchArgs")
    fetch_params = normalize_fetch_params(params_source)
    legacy_url = data.get("url")
    if isinstance(legacy_url, str) and legacy_url.strip() and "url" not in fetch_params:
        fetch_params["url"] = legacy_url.strip()

    rate_limit = data.get("rate_limit_interval")
    if isinstance(rate_limit, bool) or not isinstance(rate_limit, (int, float)) or rate_limit < 0:
        rate_limit = None
    else:
        rate_limit = int(rate_limit)

    try:
        duplicate_strategy = normalize_duplicate_strategy(data.get("duplicate_strategy"))
    except ValueError:
        duplicate_strategy = DEFAULT_DUPLICATE_STRATEGY

    canonical = {
        "id": data.get("id"),
        "created_at": data.get("created_at") or "",
        "name": data.get("name"),
        "fetch_method": data.get("fetch_method"),
        "fetch_params": fetch_params,
        "rate_limit_interval": rate_limit,
        "refresh_interval": normalize_refresh_interval(data.get("refresh_interval")),
        "id_field": normalize_id_field(data.get("id_field")),
        "duplicate_strategy": duplicate_strategy,
        "retained_locks": normalize_locks(data.get("retained_locks")),
    }
    if not isinstance(canonical["id"], str) or not canonical["id"]:
        return None, False
    try:
        channel = Channel.model_validate(canonical)
    except ValidationError as exc:
        _LOGGER.debug("Skipping unreadable channel document %r: %s", raw.get("id"), exc)
        return None, False

    changed = channel.to_document() != raw
    return channel, changed
