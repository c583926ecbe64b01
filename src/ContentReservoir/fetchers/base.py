"""Adapter contract shared by built-in and custom fetchers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol

from ..errors import FetchError

__all__ = ["SupplementaryFile", "FetchedContent", "Fetcher", "require_param"]


@dataclass(frozen=True)
class SupplementaryFile:
    """Auxiliary resource stored beside a document, relative to its resource dir."""

    relative_path: str
    content: bytes


@dataclass
class FetchedContent:
    """One item produced by a fetcher.

    Attributes:
        content: Markdown text, optionally with an inline front matter block.
        source_file_name: Suggested file name; its stem keys deduplication.
        url: Origin of the item when known.
        supplementary_files: Auxiliary resources to store with the document.
    """

    content: str
    source_file_name: Optional[str] = None
    url: Optional[str] = None
    supplementary_files: List[SupplementaryFile] = field(default_factory=list)


class Fetcher(Protocol):
    """Anything that turns a channel's fetch params into fetched items."""

    def fetch(self, fetch_params: Mapping[str, str], channel_id: str) -> List[FetchedContent]:
        ...


def require_param(fetch_params: Mapping[str, str], key: str, method: str, channel_id: str) -> str:
    value = (fetch_params or {}).get(key, "").strip()
    if not value:
        raise FetchError(
            f'{method} fetcher requires --fetch-param \'{{"{key}": "..."}}\'',
            channel_id=channel_id,
        )
    return value
