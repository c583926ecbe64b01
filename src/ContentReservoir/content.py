"""Read-only queries over stored documents."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .channels import ChannelStore
from .content_parser import infer_title
from .ingest import ContentItem

__all__ = ["ContentQuery"]


def _normalize_lock_filter(retained_by: Optional[Iterable[str]]) -> Optional[set]:
    if retained_by is None:
        return None
    names = {name.strip() for name in retained_by if name and name.strip()}
    return names or None


class ContentQuery:
    """List documents across channels with retention filters and pagination."""

    def __init__(self, store: ChannelStore) -> None:
        self.store = store

    def list_content(
        self,
        channel_ids: Optional[List[str]] = None,
        *,
        retained: Optional[bool] = None,
        retained_by: Optional[Iterable[str]] = None,
        page_size: Optional[int] = None,
        page_offset: int = 0,
    ) -> List[ContentItem]:
        """Return documents whose files exist, in channel then metadata order.

        Args:
            channel_ids: Restrict to these channels; unknown ids raise
                :class:`ContentReservoir.errors.ChannelNotFoundError`.
            retained: ``True`` keeps only locked documents, ``False`` only
                unlocked ones, ``None`` both.
            retained_by: Keep documents holding at least one of these locks.
            page_size: Maximum number of items returned; ``None`` for all.
            page_offset: Number of matching items to skip.
        """

        if channel_ids:
            channels = [self.store.get(channel_id) for channel_id in channel_ids]
        else:
            channels = self.store.list()
        lock_filter = _normalize_lock_filter(retained_by)

        results: List[ContentItem] = []
        for channel in channels:
            documents = self.store.read_documents(channel.id)
            for item in self.store.load_item_metadata(channel.id):
                if retained is True and not item.retained:
                    continue
                if retained is False and item.retained:
                    continue
                if lock_filter and not any(name in lock_filter for name in item.locks):
                    continue
                document = documents.get(item.id)
                if document is None:
                    continue
                results.append(
                    ContentItem(
                        id=item.id,
                        channel_id=channel.id,
                        title=infer_title(document.content),
                        fetched_at=item.fetched_at,
                        locks=list(item.locks),
                        content=document.content,
                        file_path=document.relative_path,
                    )
                )

        offset = max(page_offset or 0, 0)
        if page_size is None:
            return results[offset:]
        return results[offset : offset + max(page_size, 0)]

    def list_retained(self, channel_ids: Optional[List[str]] = None) -> List[ContentItem]:
        return self.list_content(channel_ids, retained=True)
