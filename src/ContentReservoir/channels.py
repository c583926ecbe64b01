# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.channels",
#   "purpose": "Durable channel configuration and per-channel item metadata",
#   "sections": [
#     {"id": "parseddocument", "name": "ParsedDocument", "anchor": "class-parseddocument", "kind": "class"},
#     {"id": "channelstore", "name": "ChannelStore", "anchor": "class-channelstore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Channel store backed by ``channels/<id>/`` directories.

Responsibilities
----------------
- Create, update, delete and enumerate channels, deriving ids from names.
- Load and save per-channel item metadata, migrating older document shapes on
  read and rewriting them once.
- Resolve which documents of a channel are actually present on disk.

Design Notes
------------
- Every accessor re-reads disk; nothing here caches channel state.
- A channel directory is found by its id first and, when the directory was
  renamed by hand, by scanning ``channel.json`` documents for a matching id.
- Unknown ids raise :class:`ContentReservoir.errors.ChannelNotFoundError`.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import (
    Channel,
    ChannelConfig,
    ChannelUpdate,
    migrate_channel_document,
    validate_model,
)
from .content_parser import slugify
from .errors import ChannelNotFoundError
from .io_utils import atomic_write_json, read_json
from .ledger import IdentifierLedger
from .metadata import ContentMetadata, parse_metadata_document, render_metadata_document
from .paths import (
    CHANNEL_CONFIG_FILE,
    CHANNEL_METADATA_FILE,
    CHANNELS_DIR,
    normalize_relative_path,
    resolve_relative,
    to_relative,
)
from .timestamps import utc_now_iso

__all__ = ["ParsedDocument", "ChannelStore"]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedDocument:
    """A document file that exists on disk together with its content."""

    id: str
    content: str
    path: Path
    relative_path: str


class ChannelStore:
    """Filesystem-backed channel configuration and metadata store."""

    def __init__(self, root: Path, ledger: IdentifierLedger) -> None:
        self.root = Path(root)
        self.ledger = ledger
        self.channels_root = self.root / CHANNELS_DIR

    # ------------------------------------------------------------------
    # Directory resolution
    # ------------------------------------------------------------------
    def _read_channel_file(self, config_path: Path) -> Optional[Channel]:
        raw = read_json(config_path, default=None)
        channel, changed = migrate_channel_document(raw)
        if channel is not None and changed:
            LOGGER.debug("Migrating channel document %s", config_path)
            atomic_write_json(config_path, channel.to_document())
        return channel

    def resolve_channel_dir(self, channel_id: str) -> Path:
        """Return the directory holding ``channel_id``.

        Raises:
            ChannelNotFoundError: When no channel document carries that id.
        """

        if not self.channels_root.is_dir():
            raise ChannelNotFoundError(channel_id)

        if channel_id and "/" not in channel_id and "\\" not in channel_id and channel_id not in (".", ".."):
            direct = self.channels_root / channel_id
            raw = read_json(direct / CHANNEL_CONFIG_FILE, default=None)
            if isinstance(raw, dict) and raw.get("id") == channel_id:
                return direct

        for candidate in sorted(self.channels_root.iterdir()):
            if not candidate.is_dir():
                continue
            raw = read_json(candidate / CHANNEL_CONFIG_FILE, default=None)
            if isinstance(raw, dict) and raw.get("id") == channel_id:
                return candidate
        raise ChannelNotFoundError(channel_id)

    def channel_dir(self, channel_id: str) -> Path:
        return self.resolve_channel_dir(channel_id)

    def channel_prefix(self, channel_id: str) -> str:
        """Reservoir-relative path of the channel directory."""

        return to_relative(self.root, self.resolve_channel_dir(channel_id))

    # ------------------------------------------------------------------
    # Channel documents
    # ------------------------------------------------------------------
    def _allocate_directory(self, name: str) -> Path:
        self.channels_root.mkdir(parents=True, exist_ok=True)
        base = slugify(name, fallback="channel")
        candidate = base
        suffix = 2
        while True:
            target = self.channels_root / candidate
            try:
                target.mkdir()
                return target
            except FileExistsError:
                candidate = f"{base}-{suffix}"
                suffix += 1

    def create(self, config: Union[ChannelConfig, Mapping[str, Any]]) -> Channel:
        """Create a channel whose id is the slug of its name."""

        validated = validate_model(ChannelConfig, config)
        channel_dir = self._allocate_directory(validated.name)
        channel = Channel.model_validate(
            {**validated.model_dump(), "id": channel_dir.name, "created_at": utc_now_iso()}
        )
        atomic_write_json(channel_dir / CHANNEL_CONFIG_FILE, channel.to_document())
        atomic_write_json(channel_dir / CHANNEL_METADATA_FILE, render_metadata_document([]))
        LOGGER.info("Created channel %s", channel.id, extra={"channel_id": channel.id})
        return channel

    def get(self, channel_id: str) -> Channel:
        channel = self._read_channel_file(self.resolve_channel_dir(channel_id) / CHANNEL_CONFIG_FILE)
        if channel is None:
            raise ChannelNotFoundError(channel_id)
        return channel

    def list(self) -> List[Channel]:
        if not self.channels_root.is_dir():
            return []
        channels: List[Channel] = []
        for candidate in sorted(self.channels_root.iterdir()):
            config_path = candidate / CHANNEL_CONFIG_FILE
            if not candidate.is_dir() or not config_path.is_file():
                continue
            channel = self._read_channel_file(config_path)
            if channel is not None:
                channels.append(channel)
        return channels

    def save(self, channel: Channel) -> Channel:
        atomic_write_json(
            self.resolve_channel_dir(channel.id) / CHANNEL_CONFIG_FILE, channel.to_document()
        )
        return channel

    def update(self, channel_id: str, update: Union[ChannelUpdate, Mapping[str, Any]]) -> Channel:
        """Merge provided fields into the stored channel and re-validate."""

        existing = self.get(channel_id)
        changes = validate_model(ChannelUpdate, update).changes()
        document = existing.to_document()
        document.update(changes)
        updated = validate_model(Channel, document)
        return self.save(updated)

    def delete(self, channel_id: str) -> None:
        """Remove the channel subtree and release its ledger bindings."""

        channel_dir = self.resolve_channel_dir(channel_id)
        prefix = to_relative(self.root, channel_dir) + "/"
        bound = [
            content_id
            for content_id, location in self.ledger.all().items()
            if location.startswith(prefix)
        ]
        shutil.rmtree(channel_dir, ignore_errors=True)
        self.ledger.unbind_many(bound)
        LOGGER.info("Deleted channel %s", channel_id, extra={"channel_id": channel_id})

    # ------------------------------------------------------------------
    # Item metadata
    # ------------------------------------------------------------------
    def load_item_metadata(self, channel_id: str) -> List[ContentMetadata]:
        """Return canonical item records, rewriting migrated documents once."""

        channel_dir = self.resolve_channel_dir(channel_id)
        metadata_path = channel_dir / CHANNEL_METADATA_FILE
        raw = read_json(metadata_path, default=None)
        if raw is None and metadata_path.exists():
            raw = {}
        result = parse_metadata_document(raw, channel_prefix=to_relative(self.root, channel_dir))
        if result.changed:
            LOGGER.debug("Migrating item metadata for %s", channel_id)
            atomic_write_json(metadata_path, render_metadata_document(result.items))
        return result.items

    def save_item_metadata(self, channel_id: str, items: List[ContentMetadata]) -> None:
        atomic_write_json(
            self.resolve_channel_dir(channel_id) / CHANNEL_METADATA_FILE,
            render_metadata_document(items),
        )

    def remove_item(self, channel_id: str, content_id: str) -> bool:
        items = self.load_item_metadata(channel_id)
        remaining = [item for item in items if item.id != content_id]
        if len(remaining) == len(items):
            return False
        self.save_item_metadata(channel_id, remaining)
        return True

    def resolve_location(self, item: ContentMetadata) -> Optional[str]:
        """Ledger location for ``item``, falling back to its ``file_path``."""

        location = self.ledger.location_of(item.id) or item.file_path
        return normalize_relative_path(location) if location else None

    def read_documents(self, channel_id: str) -> Dict[str, ParsedDocument]:
        """Map content id to parsed document for records whose file exists."""

        documents: Dict[str, ParsedDocument] = {}
        for item in self.load_item_metadata(channel_id):
            location = self.resolve_location(item)
            if not location or not location.lower().endswith(".md"):
                continue
            path = resolve_relative(self.root, location)
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except (FileNotFoundError, IsADirectoryError):
                continue
            documents[item.id] = ParsedDocument(
                id=item.id, content=content, path=path, relative_path=location
            )
        return documents
