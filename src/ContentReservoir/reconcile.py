# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.reconcile",
#   "purpose": "Heal drift between the identifier ledger, channel metadata and disk",
#   "sections": [
#     {"id": "syncreport", "name": "SyncReport", "anchor": "class-syncreport", "kind": "class"},
#     {"id": "filesystemreconciler", "name": "FilesystemReconciler", "anchor": "class-filesystemreconciler", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem reconciliation.

Responsibilities
----------------
- Drop ledger bindings whose document vanished.
- Drop metadata records whose document is missing or resolves outside the
  owning channel directory.
- Adopt untracked top-level ``*.md`` files dropped into a channel directory.
- Repair ``file_path`` drift, restore lost ledger bindings and fill missing
  ``fetched_at`` values from file modification times.

Design Notes
------------
- The pass is idempotent: a second run over an unchanged tree writes nothing.
- Each channel's metadata is written at most once per pass.
- Consistency problems are repaired and logged at DEBUG; they never raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set

from .channels import ChannelStore
from .ledger import IdentifierLedger
from .metadata import ContentMetadata
from .paths import is_within, resolve_relative, to_relative
from .timestamps import from_timestamp

__all__ = ["SyncReport", "FilesystemReconciler"]

LOGGER = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Counts of repairs made by one reconciliation pass."""

    stale_ledger_ids: List[str] = field(default_factory=list)
    removed: int = 0
    discovered: int = 0
    repaired: int = 0
    channels_written: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.stale_ledger_ids or self.removed or self.discovered or self.repaired
        )


class FilesystemReconciler:
    """Bring the ledger and channel metadata back in line with disk."""

    def __init__(self, root: Path, store: ChannelStore, ledger: IdentifierLedger) -> None:
        self.root = Path(root)
        self.store = store
        self.ledger = ledger

    def _drop_stale_bindings(self, report: SyncReport) -> None:
        stale = [
            content_id
            for content_id, location in self.ledger.all().items()
            if not resolve_relative(self.root, location).exists()
        ]
        if stale:
            self.ledger.unbind_many(stale)
            report.stale_ledger_ids.extend(sorted(stale))
            LOGGER.debug("[sync] dropped %d stale ledger binding(s)", len(stale))

    def _mtime_iso(self, path: Path) -> str:
        return from_timestamp(path.stat().st_mtime)

    def _reconcile_channel(self, channel_id: str, retained_locks: List[str], report: SyncReport) -> None:
        channel_dir = self.store.resolve_channel_dir(channel_id)
        items = self.store.load_item_metadata(channel_id)
        bindings = self.ledger.all()

        kept: List[ContentMetadata] = []
        locations: Dict[str, str] = {}
        seen_locations: Set[str] = set()
        seen_ids: Set[str] = set()
        removed = 0
        for item in items:
            location = bindings.get(item.id) or item.file_path
            path = resolve_relative(self.root, location) if location else None
            if (
                path is None
                or item.id in seen_ids
                or location in seen_locations
                or not path.is_file()
                or not is_within(channel_dir, path)
            ):
                removed += 1
                continue
            kept.append(item)
            locations[item.id] = location
            seen_ids.add(item.id)
            seen_locations.add(location)

        discovered = 0
        for path in sorted(channel_dir.iterdir()):
            if not path.is_file() or path.suffix.lower() != ".md":
                continue
            location = to_relative(self.root, path)
            if location in seen_locations:
                continue
            content_id = self.ledger.assign(location)
            if content_id in seen_ids:
                continue
            kept.append(
                ContentMetadata(
                    id=content_id,
                    locks=list(retained_locks),
                    fetched_at=self._mtime_iso(path),
                    file_path=location,
                )
            )
            locations[content_id] = location
            seen_ids.add(content_id)
            seen_locations.add(location)
            discovered += 1

        repaired = 0
        for item in kept:
            location = locations[item.id]
            if item.file_path != location:
                item.file_path = location
                repaired += 1
            if bindings.get(item.id) != location and self.ledger.location_of(item.id) != location:
                self.ledger.bind(item.id, location)
                repaired += 1
            if not item.fetched_at:
                item.fetched_at = self._mtime_iso(resolve_relative(self.root, location))
                repaired += 1

        report.removed += removed
        report.discovered += discovered
        report.repaired += repaired
        if removed or discovered or repaired:
            self.store.save_item_metadata(channel_id, kept)
            report.channels_written.append(channel_id)
            LOGGER.debug(
                "[sync] [%s] wrote metadata (removed=%d, discovered=%d, repaired=%d, items=%d)",
                channel_id, removed, discovered, repaired, len(kept),
                extra={"channel_id": channel_id},
            )
        else:
            LOGGER.debug("[sync] [%s] no metadata changes", channel_id, extra={"channel_id": channel_id})

    def sync(self) -> SyncReport:
        """Run one reconciliation pass over every channel."""

        report = SyncReport()
        self._drop_stale_bindings(report)
        for channel in self.store.list():
            self._reconcile_channel(channel.id, channel.retained_locks, report)
        return report
