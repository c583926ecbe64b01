"""Scheduler state and the persisted status document.

``.res-fetcher-status.json`` is rewritten after every tick so other processes
can report the loop's heartbeat, last successful fetch per channel and last
error per channel. Documents written with camelCase keys by older releases are
still readable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import ClassVar, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..io_utils import atomic_write_json, read_json
from ..timestamps import utc_now_iso

__all__ = [
    "PID_FILE",
    "STATUS_FILE",
    "LOG_FILE",
    "SchedulerState",
    "FetcherStatusDocument",
    "pid_path",
    "status_path",
    "log_path",
    "read_status",
    "write_status",
]

LOGGER = logging.getLogger(__name__)

PID_FILE = ".res-fetcher.pid"
STATUS_FILE = ".res-fetcher-status.json"
LOG_FILE = ".res-fetcher.log"


def pid_path(root: Path) -> Path:
    return Path(root) / PID_FILE


def status_path(root: Path) -> Path:
    return Path(root) / STATUS_FILE


def log_path(root: Path) -> Path:
    return Path(root) / LOG_FILE


@dataclass
class SchedulerState:
    """Per-loop bookkeeping.

    ``attempted_at_by_channel`` drives scheduling at full clock precision;
    ``last_attempt_at_by_channel`` is its millisecond rendering. Neither is
    persisted, so a restarted loop attempts every channel on its first tick.
    """

    started_at: str = field(default_factory=utc_now_iso)
    last_fetch_at_by_channel: Dict[str, str] = field(default_factory=dict)
    last_attempt_at_by_channel: Dict[str, str] = field(default_factory=dict)
    attempted_at_by_channel: Dict[str, datetime] = field(default_factory=dict, repr=False)
    last_error_by_channel: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def restore(cls, previous: Optional["FetcherStatusDocument"]) -> "SchedulerState":
        if previous is None:
            return cls()
        return cls(
            started_at=previous.started_at or utc_now_iso(),
            last_fetch_at_by_channel=dict(previous.last_fetch_at_by_channel),
            last_error_by_channel=dict(previous.last_error_by_channel),
        )


class FetcherStatusDocument(BaseModel):
    """On-disk status of a running background fetcher."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", populate_by_name=True)

    pid: int
    started_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("started_at", "startedAt")
    )
    last_heartbeat_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("last_heartbeat_at", "lastHeartbeatAt")
    )
    last_fetch_at_by_channel: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("last_fetch_at_by_channel", "lastFetchAtByChannel"),
    )
    last_error_by_channel: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("last_error_by_channel", "lastErrorByChannel"),
    )


def read_status(root: Path) -> Optional[FetcherStatusDocument]:
    raw = read_json(status_path(root), default=None)
    if not isinstance(raw, dict):
        return None
    try:
        return FetcherStatusDocument.model_validate(raw)
    except ValidationError as exc:
        LOGGER.debug("Ignoring unreadable fetcher status at %s: %s", status_path(root), exc)
        return None


def write_status(root: Path, pid: int, state: SchedulerState) -> FetcherStatusDocument:
    document = FetcherStatusDocument(
        pid=pid,
        started_at=state.started_at,
        last_heartbeat_at=utc_now_iso(),
        last_fetch_at_by_channel=dict(state.last_fetch_at_by_channel),
        last_error_by_channel=dict(state.last_error_by_channel),
    )
    atomic_write_json(status_path(root), document.model_dump(mode="json"))
    return document
