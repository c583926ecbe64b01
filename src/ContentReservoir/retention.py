# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.retention",
#   "purpose": "Named retention locks on documents and channel auto-apply sets",
#   "sections": [
#     {"id": "retentionlockengine", "name": "RetentionLockEngine", "anchor": "class-retentionlockengine", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Retention locks.

A document with at least one lock is *retained* and never evicted. Locks are
plain names (``global`` by default); applying a lock twice is a no-op and
releasing an absent lock changes nothing.

Range operations validate everything (numeric boundaries, ordering, boundary
existence) before writing, and write each touched channel's metadata once.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .channels import ChannelStore
from .config import Channel, normalize_lock_name, normalize_locks
from .errors import ContentNotFoundError, InvalidInputError, RangeBoundaryNotFoundError
from .metadata import ContentMetadata

__all__ = ["RetentionLockEngine"]

LOGGER = logging.getLogger(__name__)

_CONTENT_ID_PATTERN = re.compile(r"[0-9]+\Z")


def _lock_name(lock: Optional[str]) -> str:
    try:
        return normalize_lock_name(lock)
    except ValueError as exc:
        raise InvalidInputError(str(exc), field="lock") from exc


def _apply(item: ContentMetadata, lock: str, retain: bool) -> bool:
    before = list(item.locks)
    if retain:
        item.locks = normalize_locks([*item.locks, lock])
    else:
        item.locks = [name for name in item.locks if name != lock]
    return item.locks != before


def _parse_boundary(value: Optional[str], label: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if not _CONTENT_ID_PATTERN.match(value):
        raise InvalidInputError(f"Invalid {label} ID: {value}", field=label)
    return int(value)


def _numeric_id(content_id: str) -> Optional[int]:
    if not _CONTENT_ID_PATTERN.match(content_id):
        return None
    return int(content_id)


class RetentionLockEngine:
    """Apply and release retention locks through a :class:`ChannelStore`."""

    def __init__(self, store: ChannelStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------
    def _find(self, content_id: str) -> Tuple[str, List[ContentMetadata], ContentMetadata]:
        for channel in self.store.list():
            items = self.store.load_item_metadata(channel.id)
            for item in items:
                if item.id == content_id:
                    return channel.id, items, item
        raise ContentNotFoundError(content_id)

    def _update_content(self, content_id: str, lock: Optional[str], retain: bool) -> None:
        name = _lock_name(lock)
        channel_id, items, item = self._find(content_id)
        if _apply(item, name, retain):
            self.store.save_item_metadata(channel_id, items)
            LOGGER.debug(
                "%s lock %s on %s", "Applied" if retain else "Released", name, content_id,
                extra={"channel_id": channel_id},
            )

    def retain_content(self, content_id: str, lock: Optional[str] = None) -> None:
        self._update_content(content_id, lock, True)

    def release_content(self, content_id: str, lock: Optional[str] = None) -> None:
        self._update_content(content_id, lock, False)

    # ------------------------------------------------------------------
    # Ranges
    # ------------------------------------------------------------------
    def _update_range(
        self,
        from_id: Optional[str],
        to_id: Optional[str],
        channel_id: Optional[str],
        lock: Optional[str],
        retain: bool,
    ) -> int:
        name = _lock_name(lock)
        low = _parse_boundary(from_id, "start")
        high = _parse_boundary(to_id, "end")
        if low is not None and high is not None and low > high:
            raise InvalidInputError(
                f"Invalid range: fromId ({from_id}) comes after toId ({to_id})", field="range"
            )

        channels = [self.store.get(channel_id)] if channel_id else self.store.list()
        loaded: Dict[str, List[ContentMetadata]] = {}
        touched: Dict[str, bool] = {}
        found_from = low is None
        found_to = high is None
        count = 0

        for channel in channels:
            items = self.store.load_item_metadata(channel.id)
            loaded[channel.id] = items
            for item in items:
                numeric = _numeric_id(item.id)
                if numeric is None:
                    continue
                if from_id and item.id == from_id:
                    found_from = True
                if to_id and item.id == to_id:
                    found_to = True
                if (low is None or numeric >= low) and (high is None or numeric <= high):
                    count += 1
                    if _apply(item, name, retain):
                        touched[channel.id] = True

        if not found_from:
            raise RangeBoundaryNotFoundError("from", from_id or "")
        if not found_to:
            raise RangeBoundaryNotFoundError("to", to_id or "")

        for touched_id in touched:
            self.store.save_item_metadata(touched_id, loaded[touched_id])
        LOGGER.debug(
            "%s lock %s on %d item(s) across %d channel(s)",
            "Applied" if retain else "Released", name, count, len(touched),
        )
        return count

    def retain_range(
        self,
        from_id: Optional[str] = None,
        to_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        lock: Optional[str] = None,
    ) -> int:
        """Lock every document whose numeric id lies in ``[from_id, to_id]``.

        Returns:
            Number of documents inside the range.

        Raises:
            InvalidInputError: Non-numeric boundaries, ``from_id > to_id`` or a
                lock name containing a comma.
            RangeBoundaryNotFoundError: A named boundary is not among the
                candidate documents.
        """

        return self._update_range(from_id, to_id, channel_id, lock, True)

    def release_range(
        self,
        from_id: Optional[str] = None,
        to_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        lock: Optional[str] = None,
    ) -> int:
        return self._update_range(from_id, to_id, channel_id, lock, False)

    # ------------------------------------------------------------------
    # Channel auto-apply sets
    # ------------------------------------------------------------------
    def retain_channel(self, channel_id: str, lock: Optional[str] = None) -> Channel:
        """Add ``lock`` to the locks applied to future fetches of the channel."""

        name = _lock_name(lock)
        channel = self.store.get(channel_id)
        locks = normalize_locks([*channel.retained_locks, name])
        if locks == channel.retained_locks:
            return channel
        return self.store.save(channel.model_copy(update={"retained_locks": locks}))

    def release_channel(self, channel_id: str, lock: Optional[str] = None) -> Channel:
        name = _lock_name(lock)
        channel = self.store.get(channel_id)
        locks = [existing for existing in channel.retained_locks if existing != name]
        if locks == channel.retained_locks:
            return channel
        return self.store.save(channel.model_copy(update={"retained_locks": locks}))
