"""Normalisation and patching of channel ``fetch_params`` maps.

Fetch params are a flat ``str -> str`` map passed to source adapters. Stored
maps are trimmed and stripped of empty keys and non-string values. Edits arrive
as a JSON object patch where ``null`` removes a key and non-string values are
JSON-encoded.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidInputError

__all__ = [
    "normalize_fetch_params",
    "parse_fetch_param_patch",
    "apply_fetch_param_patch",
    "fetch_params_from_patch",
    "fetch_params_to_cli_args",
]


def normalize_fetch_params(fetch_params: Any) -> Dict[str, str]:
    """Return a trimmed copy of ``fetch_params`` keeping only string values."""

    if not isinstance(fetch_params, Mapping):
        return {}
    normalized: Dict[str, str] = {}
    for raw_key, raw_value in fetch_params.items():
        if not isinstance(raw_key, str) or not isinstance(raw_value, str):
            continue
        key = raw_key.strip()
        if not key:
            continue
        normalized[key] = raw_value.strip()
    return normalized


def parse_fetch_param_patch(patch: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    """Parse a JSON object patch.

    Args:
        patch: JSON text such as ``'{"url": "https://example.com", "old": null}'``.

    Returns:
        ``None`` when ``patch`` is ``None``; otherwise a map whose ``None`` values
        mark keys to delete.

    Raises:
        InvalidInputError: If ``patch`` is blank, not JSON, or not an object.
    """

    if patch is None:
        return None
    text = patch.strip()
    if not text:
        raise InvalidInputError(
            "Invalid fetch params patch: expected a JSON object string.", field="fetch_params"
        )
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidInputError(
            "Invalid fetch params patch: expected valid JSON object syntax.", field="fetch_params"
        ) from exc
    if not isinstance(parsed, dict):
        raise InvalidInputError(
            "Invalid fetch params patch: expected a JSON object.", field="fetch_params"
        )

    result: Dict[str, Optional[str]] = {}
    for raw_key, raw_value in parsed.items():
        key = raw_key.strip()
        if not key:
            continue
        if raw_value is None:
            result[key] = None
        elif isinstance(raw_value, str):
            result[key] = raw_value.strip()
        else:
            result[key] = json.dumps(raw_value)
    return result


def fetch_params_from_patch(patch: Optional[str]) -> Optional[Dict[str, str]]:
    """Build a fresh params map from ``patch``, ignoring deletions."""

    parsed = parse_fetch_param_patch(patch)
    if parsed is None:
        return None
    return {key: value for key, value in parsed.items() if value is not None}


def apply_fetch_param_patch(existing: Any, patch: Optional[str]) -> Dict[str, str]:
    """Merge ``patch`` into ``existing``; ``null`` values delete keys."""

    merged = normalize_fetch_params(existing)
    parsed = parse_fetch_param_patch(patch)
    if not parsed:
        return merged
    for key, value in parsed.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def fetch_params_to_cli_args(fetch_params: Optional[Mapping[str, str]]) -> List[str]:
    """Render params as ``key=value`` arguments for custom fetchers."""

    if not fetch_params:
        return []
    return [f"{key}={value}" for key, value in fetch_params.items()]
