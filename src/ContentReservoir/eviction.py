# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.eviction",
#   "purpose": "Size-budget enforcement by deleting unretained documents oldest-first",
#   "sections": [
#     {"id": "evictionreport", "name": "EvictionReport", "anchor": "class-evictionreport", "kind": "class"},
#     {"id": "evictionengine", "name": "EvictionEngine", "anchor": "class-evictionengine", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Eviction of unretained documents when a reservoir exceeds its budget.

Responsibilities
----------------
- Measure the reservoir as the total size of every file under ``channels/``.
- Delete unretained documents, oldest ``fetched_at`` first, until the measured
  size is within ``max_size_mb`` or no candidates remain.
- Remove each evicted document's auxiliary directory, metadata record and
  ledger binding together with the file.

Design Notes
------------
- Documents with any lock are never candidates. Locks are re-read right before
  each deletion so a lock applied concurrently still protects the document.
- Records whose ``fetched_at`` is missing or malformed sort as the oldest.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .channels import ChannelStore
from .config import ReservoirConfig
from .io_utils import tree_size
from .ledger import IdentifierLedger
from .paths import resources_dir_for
from .timestamps import EPOCH, parse_iso

__all__ = ["EvictionReport", "EvictionEngine"]

LOGGER = logging.getLogger(__name__)


@dataclass
class EvictionReport:
    """Outcome of one eviction pass."""

    deleted_ids: List[str] = field(default_factory=list)
    bytes_freed: int = 0
    size_before: int = 0
    size_after: int = 0
    budget_bytes: Optional[int] = None

    @property
    def evicted(self) -> int:
        return len(self.deleted_ids)


@dataclass
class _Candidate:
    content_id: str
    channel_id: str
    path: Path
    fetched_at: Optional[str]


class EvictionEngine:
    """Delete unretained documents to keep a reservoir within its size budget."""

    def __init__(
        self,
        store: ChannelStore,
        ledger: IdentifierLedger,
        config_provider: Callable[[], ReservoirConfig],
    ) -> None:
        self.store = store
        self.ledger = ledger
        self._config_provider = config_provider

    def measure(self) -> int:
        return tree_size(self.store.channels_root)

    def _candidates(self) -> List[_Candidate]:
        candidates: List[_Candidate] = []
        for channel in self.store.list():
            documents = self.store.read_documents(channel.id)
            for item in self.store.load_item_metadata(channel.id):
                document = documents.get(item.id)
                if document is None or item.locks:
                    continue
                candidates.append(
                    _Candidate(item.id, channel.id, document.path, item.fetched_at)
                )
        candidates.sort(key=lambda candidate: parse_iso(candidate.fetched_at) or EPOCH)
        return candidates

    def _still_unretained(self, candidate: _Candidate) -> bool:
        for item in self.store.load_item_metadata(candidate.channel_id):
            if item.id == candidate.content_id:
                return not item.locks
        return False

    @staticmethod
    def _footprint(path: Path) -> int:
        size = path.stat().st_size if path.is_file() else 0
        return size + tree_size(resources_dir_for(path))

    def evict(self) -> EvictionReport:
        """Run one eviction pass.

        Returns:
            :class:`EvictionReport`; empty when no budget is configured or the
            reservoir is already within it.
        """

        budget = self._config_provider().max_bytes
        size = self.measure()
        report = EvictionReport(size_before=size, size_after=size, budget_bytes=budget)
        if budget is None or size <= budget:
            return report

        for candidate in self._candidates():
            if size <= budget:
                break
            if not candidate.path.exists() or not self._still_unretained(candidate):
                continue
            freed = self._footprint(candidate.path)
            candidate.path.unlink(missing_ok=True)
            shutil.rmtree(resources_dir_for(candidate.path), ignore_errors=True)
            self.store.remove_item(candidate.channel_id, candidate.content_id)
            self.ledger.unbind(candidate.content_id)
            size -= freed
            report.deleted_ids.append(candidate.content_id)
            report.bytes_freed += freed
            LOGGER.debug(
                "Evicted %s (%d bytes)", candidate.content_id, freed,
                extra={"channel_id": candidate.channel_id},
            )

        # metadata rewrites above also change the measured size
        report.size_after = self.measure()
        if report.deleted_ids:
            LOGGER.info(
                "Evicted %d document(s), freed %d bytes", len(report.deleted_ids), report.bytes_freed
            )
        return report
