"""UTC timestamp helpers for ``fetched_at`` and scheduler bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

__all__ = ["utc_now", "isoformat_utc", "utc_now_iso", "parse_iso", "from_timestamp"]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return isoformat_utc(utc_now())


def from_timestamp(seconds: float) -> str:
    """ISO-8601 UTC rendering of a POSIX timestamp such as a file mtime."""

    return isoformat_utc(datetime.fromtimestamp(seconds, tz=timezone.utc))


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string; returns ``None`` when absent or malformed."""

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
