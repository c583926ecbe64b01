# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.scheduler.process",
#   "purpose": "Process marker and start/stop/status control of the background fetcher",
#   "sections": [
#     {"id": "fetcherprocessstatus", "name": "FetcherProcessStatus", "anchor": "class-fetcherprocessstatus", "kind": "class"},
#     {"id": "claim-marker", "name": "claim_marker", "anchor": "function-claim-marker", "kind": "function"},
#     {"id": "get-status", "name": "get_status", "anchor": "function-get-status", "kind": "function"},
#     {"id": "start", "name": "start", "anchor": "function-start", "kind": "function"},
#     {"id": "stop", "name": "stop", "anchor": "function-stop", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Background fetcher process control.

Responsibilities
----------------
- Guarantee at most one background fetcher per reservoir through the
  ``.res-fetcher.pid`` marker, created with ``O_CREAT | O_EXCL``.
- Report whether a fetcher is running, together with its persisted status.
- Start a detached worker process (or run the loop in the foreground) and stop
  a running one with SIGTERM.

Design Notes
------------
- Liveness is checked with :mod:`psutil`. A marker naming a dead (or zombie)
  process is stale: status and stop checks remove it, and a start removes it
  before claiming the marker again.
- A detached start claims the marker for the child's pid immediately; the
  child finds its own pid in the marker and keeps it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import psutil

from ..errors import FetcherAlreadyRunningError
from ..reservoir import Reservoir
from ..settings import ReservoirSettings
from .loop import BackgroundFetcher
from .state import pid_path, read_status

__all__ = [
    "FetcherProcessStatus",
    "StopResult",
    "is_process_running",
    "read_marker",
    "claim_marker",
    "release_marker",
    "run_foreground",
    "get_status",
    "start",
    "stop",
]

LOGGER = logging.getLogger(__name__)

NOT_RUNNING_MESSAGE = "Background fetcher is not running"


@dataclass
class FetcherProcessStatus:
    """Status of a reservoir's background fetcher as seen from another process."""

    running: bool
    pid: Optional[int] = None
    started_at: Optional[str] = None
    last_heartbeat_at: Optional[str] = None
    last_fetch_at_by_channel: Dict[str, str] = field(default_factory=dict)
    last_error_by_channel: Dict[str, str] = field(default_factory=dict)


@dataclass
class StopResult:
    stopped: bool
    message: str
    pid: Optional[int] = None


def is_process_running(pid: Optional[int]) -> bool:
    if not isinstance(pid, int) or pid <= 0:
        return False
    if not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return psutil.pid_exists(pid)


def read_marker(root: Path) -> Optional[int]:
    try:
        raw = pid_path(root).read_text(encoding="utf-8").strip()
    except (FileNotFoundError, OSError):
        return None
    try:
        pid = int(raw)
    except ValueError:
        return None
    return pid if pid > 0 else None


def _remove_marker(root: Path) -> None:
    try:
        pid_path(root).unlink()
    except FileNotFoundError:
        pass


def claim_marker(root: Path, pid: int) -> None:
    """Create the process marker for ``pid``.

    Raises:
        FetcherAlreadyRunningError: Another live process holds the marker.
    """

    marker = pid_path(root)
    while True:
        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            existing = read_marker(root)
            if existing == pid:
                return
            if existing is not None and is_process_running(existing):
                raise FetcherAlreadyRunningError(existing)
            LOGGER.debug("Removing stale fetcher marker (pid %s)", existing)
            _remove_marker(root)
            continue
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{pid}\n")
        return


def release_marker(root: Path, pid: Optional[int] = None) -> None:
    """Remove the marker, or only when it names ``pid`` if one is given."""

    if pid is not None and read_marker(root) not in (pid, None):
        return
    _remove_marker(root)


def get_status(directory: Union[str, Path]) -> FetcherProcessStatus:
    root = Path(directory).resolve()
    pid = read_marker(root)
    if pid is None or not is_process_running(pid):
        if pid is not None or pid_path(root).exists():
            _remove_marker(root)
        return FetcherProcessStatus(running=False)
    status = read_status(root)
    if status is None:
        return FetcherProcessStatus(running=True, pid=pid)
    return FetcherProcessStatus(
        running=True,
        pid=pid,
        started_at=status.started_at,
        last_heartbeat_at=status.last_heartbeat_at,
        last_fetch_at_by_channel=dict(status.last_fetch_at_by_channel),
        last_error_by_channel=dict(status.last_error_by_channel),
    )


def stop(directory: Union[str, Path]) -> StopResult:
    """Send SIGTERM to the running fetcher and clear its marker."""

    root = Path(directory).resolve()
    pid = read_marker(root)
    if pid is None:
        return StopResult(stopped=False, message=NOT_RUNNING_MESSAGE)
    if not is_process_running(pid):
        _remove_marker(root)
        return StopResult(stopped=False, message=NOT_RUNNING_MESSAGE)
    try:
        psutil.Process(pid).terminate()
    except psutil.NoSuchProcess:
        _remove_marker(root)
        return StopResult(stopped=False, message=NOT_RUNNING_MESSAGE)
    _remove_marker(root)
    LOGGER.info("Stopped background fetcher (pid %d)", pid)
    return StopResult(stopped=True, message=f"Stopped background fetcher (pid {pid})", pid=pid)


def run_foreground(
    root: Path,
    *,
    settings: Optional[ReservoirSettings] = None,
    fetcher_factory: Optional[Callable[..., BackgroundFetcher]] = None,
) -> None:
    """Claim the marker for this process and run the loop until stopped."""

    pid = os.getpid()
    claim_marker(root, pid)
    factory = fetcher_factory or BackgroundFetcher
    try:
        factory(root, settings=settings, on_shutdown=lambda: release_marker(root, pid)).run()
    finally:
        release_marker(root, pid)


def start(
    directory: Union[str, Path],
    foreground: bool = False,
    *,
    settings: Optional[ReservoirSettings] = None,
) -> int:
    """Start the background fetcher for ``directory`` and return its pid.

    Raises:
        ReservoirNotFoundError: ``directory`` is not a reservoir.
        FetcherAlreadyRunningError: A live fetcher already holds the marker.
    """

    root = Reservoir.load(directory, settings=settings).directory
    current = get_status(root)
    if current.running and current.pid is not None:
        raise FetcherAlreadyRunningError(current.pid)

    if foreground:
        run_foreground(root, settings=settings)
        return os.getpid()

    child = subprocess.Popen(
        [sys.executable, "-m", "ContentReservoir.worker", "--dir", str(root)],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        close_fds=True,
        start_new_session=True,
    )
    try:
        claim_marker(root, child.pid)
    except FetcherAlreadyRunningError:
        child.terminate()
        raise
    LOGGER.info("Started background fetcher (pid %d)", child.pid)
    return child.pid
