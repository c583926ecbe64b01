# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.ingest",
#   "purpose": "Persist fetched items with deduplication, stable ids and retention defaults",
#   "sections": [
#     {"id": "contentitem", "name": "ContentItem", "anchor": "class-contentitem", "kind": "class"},
#     {"id": "dedup-key", "name": "dedup_key_for_fetched", "anchor": "function-dedup-key-for-fetched", "kind": "function"},
#     {"id": "ingestorchestrator", "name": "IngestOrchestrator", "anchor": "class-ingestorchestrator", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Fetch-result ingestion.

Responsibilities
----------------
- Reconcile the reservoir, run the channel's fetcher and persist every item it
  returns as a Markdown document plus a metadata record.
- Deduplicate against documents already in the channel. ``overwrite`` channels
  reuse the matching document's id, file and locks; ``keep-both`` channels get
  a fresh uniquely named file and id.
- Store auxiliary resources under ``<channel dir>/<file stem>/``.

Design Notes
------------
- A fetched item is keyed by its ``id_field`` front matter value when the
  channel configures one and the item carries it, otherwise by the slug of its
  suggested file stem. Existing documents are keyed the same way, falling back
  to their file stem.
- Document writes are atomic; the channel's metadata is written once per fetch
  and only when at least one item was persisted.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

from .channels import ChannelStore
from .config import Channel, normalize_id_field
from .content_parser import infer_title, parse_front_matter, slugify
from .fetchers import FetchedContent, Fetcher, resolve_fetcher
from .io_utils import atomic_write_bytes, atomic_write_text
from .ledger import IdentifierLedger
from .metadata import ContentMetadata
from .paths import is_within, resources_dir_for, to_relative
from .reconcile import FilesystemReconciler
from .timestamps import utc_now_iso

__all__ = [
    "ContentItem",
    "IngestOrchestrator",
    "dedup_key_for_fetched",
    "file_stem_for_fetched",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_FILE_STEM = "content"


@dataclass
class ContentItem:
    """A stored document as reported to callers."""

    id: str
    channel_id: str
    title: Optional[str]
    fetched_at: Optional[str]
    locks: List[str] = field(default_factory=list)
    content: Optional[str] = None
    file_path: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "title": self.title,
            "fetched_at": self.fetched_at,
            "locks": list(self.locks),
            "content": self.content,
            "file_path": self.file_path,
        }


def file_stem_for_fetched(item: FetchedContent) -> str:
    name = (item.source_file_name or "").strip()
    if not name:
        return DEFAULT_FILE_STEM
    return PurePosixPath(name.replace("\\", "/")).stem or DEFAULT_FILE_STEM


def _front_matter_key(content: str, id_field: Optional[str]) -> Optional[str]:
    if not id_field:
        return None
    value = parse_front_matter(content).get(id_field, "").strip()
    return value or None


def dedup_key_for_fetched(item: FetchedContent, id_field: Optional[str]) -> str:
    """Key used to match ``item`` against documents already in the channel."""

    return _front_matter_key(item.content, id_field) or slugify(file_stem_for_fetched(item))


def dedup_key_for_existing(content: str, path: Path, id_field: Optional[str]) -> str:
    return _front_matter_key(content, id_field) or path.stem


@dataclass
class _Existing:
    content_id: str
    path: Path


class IngestOrchestrator:
    """Turn one channel fetch into stored documents."""

    def __init__(
        self,
        root: Path,
        store: ChannelStore,
        ledger: IdentifierLedger,
        reconciler: FilesystemReconciler,
        *,
        fetcher_resolver: Optional[Callable[[str], Fetcher]] = None,
        fetchers_dir: Optional[Path] = None,
    ) -> None:
        self.root = Path(root)
        self.store = store
        self.ledger = ledger
        self.reconciler = reconciler
        self._fetchers_dir = fetchers_dir
        self._fetcher_resolver = fetcher_resolver

    def resolve_fetcher(self, fetch_method: str) -> Fetcher:
        if self._fetcher_resolver is not None:
            return self._fetcher_resolver(fetch_method)
        return resolve_fetcher(fetch_method, self._fetchers_dir)

    def _existing_by_key(self, channel: Channel) -> Dict[str, _Existing]:
        existing: Dict[str, _Existing] = {}
        for content_id, document in self.store.read_documents(channel.id).items():
            key = dedup_key_for_existing(document.content, document.path, channel.id_field)
            existing[key] = _Existing(content_id=content_id, path=document.path)
        return existing

    @staticmethod
    def _unique_path(channel_dir: Path, stem: str) -> Path:
        base = slugify(stem)
        candidate = channel_dir / f"{base}.md"
        suffix = 1
        while candidate.exists():
            candidate = channel_dir / f"{base}-{suffix}.md"
            suffix += 1
        return candidate

    def _write_supplementary(self, document_path: Path, item: FetchedContent, *, replace: bool) -> None:
        resources_root = resources_dir_for(document_path)
        if replace and resources_root.exists():
            shutil.rmtree(resources_root)
        for supplementary in item.supplementary_files:
            destination = resources_root / supplementary.relative_path
            if not is_within(resources_root, destination):
                LOGGER.warning(
                    "Skipping auxiliary file outside %s: %s",
                    resources_root.name,
                    supplementary.relative_path,
                )
                continue
            atomic_write_bytes(destination, supplementary.content)

    def ingest(self, channel_id: str) -> List[ContentItem]:
        """Fetch ``channel_id`` and persist what the fetcher returns.

        Raises:
            ChannelNotFoundError: Unknown channel.
            FetchError: The fetcher failed; nothing is written in that case.
        """

        self.reconciler.sync()
        channel = self.store.get(channel_id)
        fetched = self.resolve_fetcher(channel.fetch_method).fetch(channel.fetch_params, channel.id)

        channel_dir = self.store.resolve_channel_dir(channel.id)
        items = self.store.load_item_metadata(channel.id)
        by_id: Dict[str, ContentMetadata] = {item.id: item for item in items}
        existing = self._existing_by_key(channel)
        id_field = normalize_id_field(channel.id_field)
        overwrite = channel.duplicate_strategy == "overwrite"

        persisted: List[ContentItem] = []
        for item in fetched:
            key = dedup_key_for_fetched(item, id_field)
            match = existing.get(key) if overwrite else None
            fetched_at = utc_now_iso()

            if match is not None:
                path = match.path
                content_id = match.content_id
                record = by_id.get(content_id)
                if record is None:
                    record = ContentMetadata(id=content_id, locks=list(channel.retained_locks))
                    items.append(record)
                    by_id[content_id] = record
            else:
                path = self._unique_path(channel_dir, file_stem_for_fetched(item))
                content_id = self.ledger.assign(to_relative(self.root, path))
                record = ContentMetadata(id=content_id, locks=list(channel.retained_locks))
                items.append(record)
                by_id[content_id] = record

            location = to_relative(self.root, path)
            record.fetched_at = fetched_at
            record.file_path = location
            if item.url and not record.url:
                record.url = item.url
            self.ledger.bind(content_id, location)
            atomic_write_text(path, item.content)
            self._write_supplementary(path, item, replace=match is not None)
            existing[key] = _Existing(content_id=content_id, path=path)

            persisted.append(
                ContentItem(
                    id=content_id,
                    channel_id=channel.id,
                    title=infer_title(item.content),
                    fetched_at=fetched_at,
                    locks=list(record.locks),
                    content=item.content,
                    file_path=location,
                )
            )

        if persisted:
            self.store.save_item_metadata(channel.id, items)
            LOGGER.debug(
                "[sync] [%s] wrote metadata after fetch (%d item(s))",
                channel.id, len(persisted), extra={"channel_id": channel.id},
            )
        else:
            LOGGER.debug(
                "[sync] [%s] skipped metadata write after fetch (0 items)",
                channel.id, extra={"channel_id": channel.id},
            )
        return persisted
