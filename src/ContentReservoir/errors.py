# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.errors",
#   "purpose": "Error taxonomy shared by the reservoir lifecycle engine",
#   "sections": [
#     {"id": "reservoirerror", "name": "ReservoirError", "anchor": "class-reservoirerror", "kind": "class"},
#     {"id": "notfounderror", "name": "NotFoundError", "anchor": "class-notfounderror", "kind": "class"},
#     {"id": "invalidinputerror", "name": "InvalidInputError", "anchor": "class-invalidinputerror", "kind": "class"},
#     {"id": "ledgerlocktimeout", "name": "LedgerLockTimeout", "anchor": "class-ledgerlocktimeout", "kind": "class"},
#     {"id": "fetcherror", "name": "FetchError", "anchor": "class-fetcherror", "kind": "class"},
#     {"id": "describe-error", "name": "describe_error", "anchor": "function-describe-error", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for reservoir operations.

Responsibilities
----------------
- Separate **not-found** failures (unknown channel, unknown content id, missing
  range boundary) from **validation** failures so callers can report them
  without retrying.
- Surface ledger contention as :class:`LedgerLockTimeout`, distinct from
  logical errors, so interactive callers can say "try again later".
- Wrap adapter failures in :class:`FetchError`; the scheduler records these per
  channel instead of letting them escape the loop.

Design Notes
------------
- Consistency problems (stale ledger entries, orphaned metadata) are never
  represented here. The reconciler repairs them silently.
- :class:`InvalidInputError` also subclasses :class:`ValueError` so generic
  argument validation code keeps working.
"""

from __future__ import annotations

from typing import Any, Optional

__all__ = (
    "ReservoirError",
    "NotFoundError",
    "ReservoirNotFoundError",
    "ChannelNotFoundError",
    "ContentNotFoundError",
    "RangeBoundaryNotFoundError",
    "InvalidInputError",
    "LedgerLockTimeout",
    "FetchError",
    "FetcherAlreadyRunningError",
    "describe_error",
)


class ReservoirError(Exception):
    """Base class for every error raised by the reservoir engine."""


class NotFoundError(ReservoirError):
    """Raised when a referenced entity does not exist."""


class ReservoirNotFoundError(NotFoundError):
    """Raised when a directory has not been initialised as a reservoir."""

    def __init__(self, directory: str) -> None:
        super().__init__(f"No reservoir found at {directory}. Run 'res init' first.")
        self.directory = directory


class ChannelNotFoundError(NotFoundError):
    """Raised when a channel id does not resolve to a channel directory."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(f"Channel not found: {channel_id}")
        self.channel_id = channel_id


class ContentNotFoundError(NotFoundError):
    """Raised when a content id is not present in any channel metadata."""

    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content not found: {content_id}")
        self.content_id = content_id


class RangeBoundaryNotFoundError(NotFoundError):
    """Raised when a named range boundary is absent among candidate items."""

    def __init__(self, boundary: str, content_id: str) -> None:
        label = "Start" if boundary == "from" else "End"
        super().__init__(f"{label} ID not found: {content_id}")
        self.boundary = boundary
        self.content_id = content_id


class InvalidInputError(ReservoirError, ValueError):
    """Raised when caller input is rejected before any mutation happens."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class LedgerLockTimeout(ReservoirError):
    """Raised when the identifier ledger lock cannot be acquired in time."""

    def __init__(self, lock_path: str, timeout: float) -> None:
        super().__init__(
            f"Timed out acquiring content ID lock at {lock_path} after {timeout:.1f}s"
        )
        self.lock_path = lock_path
        self.timeout = timeout


class FetchError(ReservoirError):
    """Raised when a source adapter fails to produce items."""

    def __init__(
        self,
        message: str,
        *,
        channel_id: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.channel_id = channel_id
        self.url = url
        self.details = details or {}


class FetcherAlreadyRunningError(ReservoirError):
    """Raised when a background fetcher already holds the process marker."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Background fetcher already running (pid {pid})")
        self.pid = pid


def describe_error(exc: BaseException) -> str:
    """Return the message recorded for ``exc`` in scheduler status documents."""

    message = str(exc).strip()
    return message or exc.__class__.__name__
