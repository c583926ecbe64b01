"""RSS/Atom fetcher built on ``httpx`` and ``feedparser``."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Mapping, Optional

import feedparser
import httpx
from bs4 import BeautifulSoup

from ..content_parser import render_front_matter, slugify
from ..errors import FetchError
from ..settings import ReservoirSettings, get_settings
from .base import FetchedContent, require_param
from .http import build_client, build_retrying, get_with_retries

__all__ = ["RssFetcher", "html_to_text", "entry_to_markdown"]

LOGGER = logging.getLogger(__name__)

UNTITLED = "(untitled)"


def html_to_text(html: str) -> str:
    """Flatten an HTML fragment into readable paragraphs."""

    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    paragraphs: List[str] = []
    for line in lines:
        if line:
            paragraphs.append(line)
    return "\n\n".join(paragraphs)


def _entry_body(entry: Any) -> str:
    content = entry.get("content") or []
    if content:
        return content[0].get("value", "") or ""
    return entry.get("summary", "") or ""


def entry_to_markdown(entry: Any) -> FetchedContent:
    """Render one feed entry as a Markdown document with front matter."""

    title = (entry.get("title") or "").strip() or UNTITLED
    link = (entry.get("link") or "").strip() or None
    front_matter = render_front_matter(
        {
            "title": title,
            "url": link,
            "guid": (entry.get("id") or "").strip() or None,
            "published": (entry.get("published") or entry.get("updated") or "").strip() or None,
        }
    )
    body = html_to_text(_entry_body(entry))
    markdown = f"{front_matter}# {title}\n"
    if body:
        markdown += f"\n{body}\n"
    return FetchedContent(
        content=markdown,
        source_file_name=f"{slugify(title)}.md",
        url=link,
    )


class RssFetcher:
    """Fetch a feed (param ``url``) and emit one document per entry."""

    method = "rss"

    def __init__(
        self,
        *,
        settings: Optional[ReservoirSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._sleep = sleep

    def fetch(self, fetch_params: Mapping[str, str], channel_id: str) -> List[FetchedContent]:
        url = require_param(fetch_params, "url", self.method, channel_id)
        settings = self._settings or get_settings()
        with build_client(settings, transport=self._transport) as client:
            response = get_with_retries(
                client, url, build_retrying(settings, sleep=self._sleep), channel_id=channel_id
            )
        feed = feedparser.parse(response.content)
        entries = list(getattr(feed, "entries", []) or [])
        if not entries and getattr(feed, "bozo", False):
            raise FetchError(
                f"Failed to parse feed at {url}: {getattr(feed, 'bozo_exception', 'invalid feed')}",
                channel_id=channel_id,
                url=url,
            )
        LOGGER.debug("Parsed %d feed entries from %s", len(entries), url, extra={"channel_id": channel_id})
        return [entry_to_markdown(entry) for entry in entries]
