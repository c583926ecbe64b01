# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.ledger",
#   "purpose": "Reservoir-wide content id sequence and id-to-location map",
#   "sections": [
#     {"id": "identifierledger", "name": "IdentifierLedger", "anchor": "class-identifierledger", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Identifier ledger shared by every process touching a reservoir.

Responsibilities
----------------
- Hand out monotonically increasing integer ids (as strings) that are never
  reused, even after the document they named is gone.
- Maintain the bidirectional mapping between ids and reservoir-relative
  document locations.

Design Notes
------------
- ``.res-content-id.counter`` holds the high-water mark and
  ``.res-content-id.map.json`` the ``{id: location}`` map. Both are rewritten
  atomically, so lock-free readers see a complete document.
- Every read-modify-write happens inside :func:`ContentReservoir.locks.ledger_lock`
  on ``.res-content-id.lock``; contention beyond the timeout raises
  :class:`ContentReservoir.errors.LedgerLockTimeout`.
- An unreadable counter counts as ``0`` and an unreadable map as empty. Ids are
  only ever raised, so a damaged counter can never hand out an id that is still
  bound: :meth:`bind` lifts the floor to the highest bound id.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

from .io_utils import atomic_write_json, atomic_write_text, read_json
from .locks import ledger_lock
from .paths import normalize_relative_path

__all__ = [
    "COUNTER_FILE",
    "MAP_FILE",
    "LOCK_FILE",
    "IdentifierLedger",
]

LOGGER = logging.getLogger(__name__)

COUNTER_FILE = ".res-content-id.counter"
MAP_FILE = ".res-content-id.map.json"
LOCK_FILE = ".res-content-id.lock"


def _parse_positive_int(value: str) -> Optional[int]:
    try:
        parsed = int(value.strip())
    except (AttributeError, ValueError):
        return None
    return parsed if parsed > 0 else None


class IdentifierLedger:
    """Durable id sequence plus id↔location map rooted at a reservoir directory.

    Attributes:
        root: Reservoir root directory.
        counter_path: High-water mark file.
        map_path: JSON id→location map.
        lock_path: Cross-process lock file.

    Examples:
        >>> ledger = IdentifierLedger(Path("/tmp/res"))  # doctest: +SKIP
        >>> ledger.assign("channels/news/hello.md")  # doctest: +SKIP
        '1'
    """

    def __init__(
        self,
        root: Path,
        *,
        lock_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.root = Path(root)
        self.counter_path = self.root / COUNTER_FILE
        self.map_path = self.root / MAP_FILE
        self.lock_path = self.root / LOCK_FILE
        self._lock_timeout = lock_timeout
        self._poll_interval = poll_interval

    def _locked(self):
        return ledger_lock(
            self.lock_path, timeout=self._lock_timeout, poll_interval=self._poll_interval
        )

    # ------------------------------------------------------------------
    # Raw state
    # ------------------------------------------------------------------
    def _read_counter(self) -> int:
        try:
            raw = self.counter_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return 0
        except OSError as exc:
            LOGGER.debug("Unreadable counter at %s: %s", self.counter_path, exc)
            return 0
        return _parse_positive_int(raw) or 0

    def _write_counter(self, value: int) -> None:
        atomic_write_text(self.counter_path, f"{value}\n")

    def _read_map(self) -> Dict[str, str]:
        raw = read_json(self.map_path, default={})
        if not isinstance(raw, dict):
            return {}
        return {
            str(key): normalize_relative_path(value)
            for key, value in raw.items()
            if isinstance(value, str)
        }

    def _write_map(self, mapping: Dict[str, str]) -> None:
        atomic_write_json(self.map_path, mapping)

    def _next_value(self, mapping: Dict[str, str]) -> int:
        bound = [_parse_positive_int(content_id) or 0 for content_id in mapping]
        return max([self._read_counter(), *bound]) + 1

    @staticmethod
    def _find(mapping: Dict[str, str], location: str) -> Optional[str]:
        for content_id, mapped in mapping.items():
            if mapped == location:
                return content_id
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def next_id(self) -> str:
        """Reserve and return the next id without binding it."""

        with self._locked():
            value = self._next_value(self._read_map())
            self._write_counter(value)
        return str(value)

    def assign(self, location: str) -> str:
        """Return the id bound to ``location``, binding a fresh one if needed."""

        normalized = normalize_relative_path(location)
        with self._locked():
            mapping = self._read_map()
            existing = self._find(mapping, normalized)
            if existing is not None:
                return existing
            value = self._next_value(mapping)
            content_id = str(value)
            mapping[content_id] = normalized
            self._write_counter(value)
            self._write_map(mapping)
        LOGGER.debug("ledger-assign id=%s location=%s", content_id, normalized)
        return content_id

    def bind(self, content_id: str, location: str) -> None:
        """Bind ``content_id`` to ``location`` and raise the counter floor.

        Any other id previously bound to ``location`` is released so a location
        is never referenced twice. Non-numeric or non-positive ids are bound
        without moving the counter.
        """

        normalized = normalize_relative_path(location)
        with self._locked():
            mapping = self._read_map()
            changed = mapping.get(content_id) != normalized
            for other_id, mapped in list(mapping.items()):
                if mapped == normalized and other_id != content_id:
                    del mapping[other_id]
                    changed = True
            mapping[content_id] = normalized
            if changed:
                self._write_map(mapping)
            numeric = _parse_positive_int(content_id)
            if numeric is not None and numeric > self._read_counter():
                self._write_counter(numeric)

    def unbind(self, content_id: str) -> bool:
        """Remove the binding for ``content_id``; the id is never reissued."""

        return self.unbind_many([content_id]) > 0

    def unbind_many(self, content_ids: Iterable[str]) -> int:
        """Remove several bindings in one locked write; returns how many existed."""

        targets = set(content_ids)
        if not targets:
            return 0
        with self._locked():
            mapping = self._read_map()
            removed = [content_id for content_id in targets if content_id in mapping]
            if not removed:
                return 0
            for content_id in removed:
                del mapping[content_id]
            self._write_map(mapping)
        LOGGER.debug("ledger-unbind ids=%s", sorted(removed))
        return len(removed)

    # ------------------------------------------------------------------
    # Lock-free reads
    # ------------------------------------------------------------------
    def location_of(self, content_id: str) -> Optional[str]:
        return self._read_map().get(content_id)

    def id_of(self, location: str) -> Optional[str]:
        return self._find(self._read_map(), normalize_relative_path(location))

    def all(self) -> Dict[str, str]:
        """Snapshot of every binding."""

        return self._read_map()

    def high_water_mark(self) -> int:
        return self._read_counter()
