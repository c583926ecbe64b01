"""Source adapters.

``rss`` and ``web_page`` are built in; every other ``fetch_method`` names an
executable in the custom fetchers directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional

from ..settings import resolve_custom_fetchers_dir
from .base import FetchedContent, Fetcher, SupplementaryFile
from .custom import CustomFetcher, list_custom_fetchers, register_custom_fetcher
from .rss import RssFetcher
from .webpage import WebPageFetcher

__all__ = [
    "FetchedContent",
    "Fetcher",
    "SupplementaryFile",
    "RssFetcher",
    "WebPageFetcher",
    "CustomFetcher",
    "BUILTIN_FETCHERS",
    "get_builtin_fetcher",
    "resolve_fetcher",
    "register_custom_fetcher",
    "list_custom_fetchers",
]

BUILTIN_FETCHERS: Dict[str, Callable[[], Fetcher]] = {
    RssFetcher.method: RssFetcher,
    WebPageFetcher.method: WebPageFetcher,
}


def get_builtin_fetcher(fetch_method: str) -> Optional[Fetcher]:
    factory = BUILTIN_FETCHERS.get(fetch_method)
    return factory() if factory is not None else None


def resolve_fetcher(fetch_method: str, fetchers_dir: Optional[Path] = None) -> Fetcher:
    """Return the built-in fetcher for ``fetch_method`` or a :class:`CustomFetcher`."""

    builtin = get_builtin_fetcher(fetch_method)
    if builtin is not None:
        return builtin
    return CustomFetcher((fetchers_dir or resolve_custom_fetchers_dir()) / fetch_method)
