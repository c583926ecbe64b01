"""Inline front matter, titles and slugs for Markdown documents."""

from __future__ import annotations

import json
import re
from typing import Dict, Optional

__all__ = [
    "slugify",
    "parse_front_matter",
    "strip_front_matter",
    "infer_title",
    "render_front_matter",
]

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_HEADING_PATTERN = re.compile(r"^\s*#\s+(.+?)\s*#*\s*$")
_FRONT_MATTER_OPEN = "---\n"
_FRONT_MATTER_CLOSE = "\n---\n"


def slugify(value: str, fallback: str = "content") -> str:
    """Lowercase ``value`` and collapse non-alphanumeric runs into ``-``."""

    slug = _SLUG_PATTERN.sub("-", value.strip().lower()).strip("-")
    return slug or fallback


def _front_matter_bounds(raw: str) -> Optional[int]:
    if not raw.startswith(_FRONT_MATTER_OPEN):
        return None
    end = raw.find(_FRONT_MATTER_CLOSE, len(_FRONT_MATTER_OPEN) - 1)
    return None if end == -1 else end


def _maybe_json_string(value: str) -> str:
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value
    return parsed if isinstance(parsed, str) else value


def parse_front_matter(raw: str) -> Dict[str, str]:
    """Return ``key: value`` pairs from a leading ``---`` block.

    Values that are JSON string literals are decoded, so ``title: "A: B"``
    yields ``A: B``.
    """

    end = _front_matter_bounds(raw)
    if end is None:
        return {}
    fields: Dict[str, str] = {}
    for line in raw[len(_FRONT_MATTER_OPEN) : end].split("\n"):
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        fields[key] = _maybe_json_string(value.strip())
    return fields


def strip_front_matter(raw: str) -> str:
    end = _front_matter_bounds(raw)
    if end is None:
        return raw
    return raw[end + len(_FRONT_MATTER_CLOSE) :]


def infer_title(raw: str) -> Optional[str]:
    """Title from front matter ``title``, else the first ``# `` heading."""

    title = parse_front_matter(raw).get("title", "").strip()
    if title:
        return title
    for line in strip_front_matter(raw).split("\n"):
        match = _HEADING_PATTERN.match(line)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def render_front_matter(fields: Dict[str, Optional[str]]) -> str:
    """Render ``fields`` as a front matter block, JSON-quoting every value."""

    lines = [f"{key}: {json.dumps(value, ensure_ascii=False)}" for key, value in fields.items() if value]
    if not lines:
        return ""
    return _FRONT_MATTER_OPEN + "\n".join(lines) + _FRONT_MATTER_CLOSE
