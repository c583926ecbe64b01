# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.metadata",
#   "purpose": "Per-channel item metadata records and migration-on-read",
#   "sections": [
#     {"id": "contentmetadata", "name": "ContentMetadata", "anchor": "class-contentmetadata", "kind": "class"},
#     {"id": "classify-entry", "name": "classify_entry", "anchor": "function-classify-entry", "kind": "function"},
#     {"id": "parse-metadata-document", "name": "parse_metadata_document", "anchor": "function-parse-metadata-document", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Item metadata records stored in ``channels/<id>/metadata.json``.

Responsibilities
----------------
- Define :class:`ContentMetadata`, the canonical per-document record
  (``id``, ``locks``, ``fetched_at``, ``file_path``).
- Parse every historical record shape into that form and report whether the
  stored document must be rewritten.

Design Notes
------------
Each stored entry is classified into exactly one variant before conversion:

``current``
    ``{id, locks, fetched_at, file_path}``; normalised in place.
``camel``
    ``{id, locks, fetchedAt, filePath | fileName}`` from older writers.
``read-flag``
    ``{id, read}``; unread entries are retained under the ``global`` lock.
``legacy``
    ``{id, channelId, title, fetchedAt, read?}``; ``fetchedAt`` survives and
    ``read: false`` maps to the ``global`` lock.
``invalid``
    Anything without a string ``id``; dropped.

Missing ``fetched_at`` values are left empty here and filled from file mtimes by
the reconciler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

from .config.models import GLOBAL_LOCK_NAME, normalize_locks
from .paths import normalize_relative_path

__all__ = [
    "ContentMetadata",
    "MetadataParseResult",
    "classify_entry",
    "parse_metadata_document",
    "render_metadata_document",
]

_CAMEL_MARKERS = ("fetchedAt", "filePath", "fileName")
_LEGACY_MARKERS = ("channelId", "title")


@dataclass
class ContentMetadata:
    """Metadata record for one stored document."""

    id: str
    locks: List[str] = field(default_factory=list)
    fetched_at: Optional[str] = None
    file_path: Optional[str] = None
    url: Optional[str] = None

    @property
    def retained(self) -> bool:
        return bool(self.locks)

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {"id": self.id, "locks": list(self.locks)}
        if self.fetched_at:
            document["fetched_at"] = self.fetched_at
        if self.file_path:
            document["file_path"] = self.file_path
        if self.url:
            document["url"] = self.url
        return document


class MetadataParseResult(NamedTuple):
    items: List[ContentMetadata]
    changed: bool


def classify_entry(entry: Any) -> str:
    """Return the variant tag for a stored metadata entry."""

    if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
        return "invalid"
    if isinstance(entry.get("locks"), list):
        if any(marker in entry for marker in _CAMEL_MARKERS):
            return "camel"
        return "current"
    if any(marker in entry for marker in _LEGACY_MARKERS):
        return "legacy"
    if isinstance(entry.get("read"), bool):
        return "read-flag"
    return "invalid"


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _path(value: Any) -> Optional[str]:
    text = _text(value)
    return normalize_relative_path(text) if text else None


def _from_current(entry: Dict[str, Any], channel_prefix: str) -> ContentMetadata:
    return ContentMetadata(
        id=entry["id"],
        locks=normalize_locks(entry.get("locks")),
        fetched_at=_text(entry.get("fetched_at")),
        file_path=_path(entry.get("file_path")),
        url=_text(entry.get("url")),
    )


def _from_camel(entry: Dict[str, Any], channel_prefix: str) -> ContentMetadata:
    file_path = _path(entry.get("filePath"))
    file_name = _text(entry.get("fileName"))
    if file_path is None and file_name is not None:
        stem = file_name[:-3] if file_name.lower().endswith(".md") else file_name
        file_path = normalize_relative_path(f"{channel_prefix}/{stem}.md")
    return ContentMetadata(
        id=entry["id"],
        locks=normalize_locks(entry.get("locks")),
        fetched_at=_text(entry.get("fetchedAt")),
        file_path=file_path,
        url=_text(entry.get("url")),
    )


def _from_read_flag(entry: Dict[str, Any], channel_prefix: str) -> ContentMetadata:
    locks = [] if entry["read"] else [GLOBAL_LOCK_NAME]
    return ContentMetadata(id=entry["id"], locks=locks)


def _from_legacy(entry: Dict[str, Any], channel_prefix: str) -> ContentMetadata:
    locks = [GLOBAL_LOCK_NAME] if entry.get("read") is False else []
    return ContentMetadata(
        id=entry["id"],
        locks=locks,
        fetched_at=_text(entry.get("fetchedAt")),
        url=_text(entry.get("url")),
    )


_CONVERTERS = {
    "current": _from_current,
    "camel": _from_camel,
    "read-flag": _from_read_flag,
    "legacy": _from_legacy,
}


def parse_metadata_document(raw: Any, *, channel_prefix: str) -> MetadataParseResult:
    """Convert a stored metadata document into canonical records.

    Args:
        raw: Parsed JSON (``{"items": [...]}``), or ``None`` when the file is
            absent.
        channel_prefix: Reservoir-relative channel directory used to resolve
            bare ``fileName`` entries.

    Returns:
        :class:`MetadataParseResult` with ``changed`` set when the canonical
        document differs from ``raw``.
    """

    if raw is None:
        return MetadataParseResult([], False)
    entries = raw.get("items") if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        return MetadataParseResult([], True)

    items: List[ContentMetadata] = []
    changed = False
    for entry in entries:
        variant = classify_entry(entry)
        if variant == "invalid":
            changed = True
            continue
        record = _CONVERTERS[variant](entry, channel_prefix)
        if record.to_document() != entry:
            changed = True
        items.append(record)
    return MetadataParseResult(items, changed)


def render_metadata_document(items: List[ContentMetadata]) -> Dict[str, Any]:
    return {"items": [item.to_document() for item in items]}
