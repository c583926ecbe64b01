"""Single web page fetcher: main content to Markdown via ``trafilatura``."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Mapping, Optional

import httpx
import trafilatura
from bs4 import BeautifulSoup

from ..content_parser import slugify
from ..errors import FetchError
from ..settings import ReservoirSettings, get_settings
from .base import FetchedContent, require_param
from .http import build_client, build_retrying, get_with_retries
from .rss import html_to_text

__all__ = ["WebPageFetcher", "convert_html_to_markdown", "extract_title"]

LOGGER = logging.getLogger(__name__)

_HTML_TYPES = ("text/html", "application/xhtml+xml")


def extract_title(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        title = soup.title.string.strip()
        return title or None
    return None


def convert_html_to_markdown(html: str, url: Optional[str] = None) -> str:
    """Extract the main content as Markdown, falling back to plain page text."""

    markdown = trafilatura.extract(
        html,
        url=url,
        output_format="markdown",
        include_links=True,
        include_comments=False,
    )
    if markdown and markdown.strip():
        return markdown.strip() + "\n"
    LOGGER.debug("Main-content extraction returned nothing for %s; using page text", url)
    soup = BeautifulSoup(html, "html.parser")
    body = soup.body or soup
    return html_to_text(str(body)) + "\n"


class WebPageFetcher:
    """Fetch one HTML page (param ``url``) as a single document."""

    method = "web_page"

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
        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type.lower() for kind in _HTML_TYPES):
            raise FetchError(
                f"Unsupported content type for {url}: {content_type or 'unknown'}",
                channel_id=channel_id,
                url=url,
            )
        html = response.text
        title = extract_title(html) or url
        return [
            FetchedContent(
                content=convert_html_to_markdown(html, url),
                source_file_name=f"{slugify(title)}.md",
                url=url,
            )
        ]
