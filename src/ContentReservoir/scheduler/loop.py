# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.scheduler.loop",
#   "purpose": "Polling scheduler tick and the long-running background fetch loop",
#   "sections": [
#     {"id": "poll-interval", "name": "poll_interval_seconds", "anchor": "function-poll-interval-seconds", "kind": "function"},
#     {"id": "tick", "name": "run_scheduled_fetch_tick", "anchor": "function-run-scheduled-fetch-tick", "kind": "function"},
#     {"id": "backgroundfetcher", "name": "BackgroundFetcher", "anchor": "class-backgroundfetcher", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Scheduler loop.

Responsibilities
----------------
- Decide per tick which channels are due and fetch them, recording successes
  and failures without letting a failure escape the tick.
- Run the tick forever in :class:`BackgroundFetcher`, persisting status after
  each tick, resyncing after filesystem changes and shutting down cleanly on
  SIGTERM/SIGINT.

Design Notes
------------
- A channel is due when it was never attempted by this loop or when
  ``max(refresh_interval, rate_limit_interval)`` seconds have passed since the
  last attempt. Failed attempts wait the same interval; there is no separate
  backoff multiplier.
- Filesystem events under ``channels/`` come from a ``watchdog`` observer and
  trigger a debounced resync on a timer thread. The reservoir's process-local
  guard keeps that resync from interleaving with a fetch.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..cancellation import CancellationToken
from ..config import Channel, DEFAULT_REFRESH_INTERVAL_SECONDS
from ..errors import ReservoirError, describe_error
from ..paths import CHANNELS_DIR
from ..reservoir import Reservoir
from ..settings import ReservoirSettings, get_settings
from ..timestamps import isoformat_utc, parse_iso, utc_now, utc_now_iso
from .state import SchedulerState, read_status, write_status

__all__ = [
    "RESYNC_DEBOUNCE_SECONDS",
    "TickHooks",
    "SchedulerReservoir",
    "poll_interval_seconds",
    "run_scheduled_fetch_tick",
    "BackgroundFetcher",
]

LOGGER = logging.getLogger(__name__)

RESYNC_DEBOUNCE_SECONDS = 0.25


class SchedulerReservoir(Protocol):
    def list_channels(self) -> List[Channel]:
        ...

    def fetch_channel(self, channel_id: str) -> Any:
        ...

    def sync_content_tracking(self) -> Any:
        ...


@dataclass
class TickHooks:
    """Optional callbacks invoked after each fetch attempt."""

    on_fetch_success: Optional[Callable[[str, Optional[int]], None]] = None
    on_fetch_error: Optional[Callable[[str, str], None]] = None


def poll_interval_seconds(channel: Channel) -> int:
    refresh = channel.refresh_interval if channel.refresh_interval and channel.refresh_interval > 0 else DEFAULT_REFRESH_INTERVAL_SECONDS
    rate_limit = channel.rate_limit_interval if channel.rate_limit_interval and channel.rate_limit_interval > 0 else 0
    return max(refresh, rate_limit)


def _is_due(channel: Channel, state: SchedulerState, now: datetime) -> bool:
    last_attempt = state.attempted_at_by_channel.get(channel.id)
    if last_attempt is None:
        last_attempt = parse_iso(state.last_attempt_at_by_channel.get(channel.id))
    if last_attempt is None:
        return True
    return (now - last_attempt).total_seconds() >= poll_interval_seconds(channel)


def run_scheduled_fetch_tick(
    reservoir: SchedulerReservoir,
    state: SchedulerState,
    now: Optional[datetime] = None,
    hooks: Optional[TickHooks] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> List[str]:
    """Run one scheduler tick.

    Args:
        reservoir: Anything exposing ``list_channels``, ``fetch_channel`` and
            ``sync_content_tracking``.
        state: Mutable scheduler state, updated in place.
        now: Reference time for due checks; defaults to the current UTC time.
        hooks: Callbacks for per-channel outcomes.
        cancel_token: Checked before each channel; a cancelled token ends the
            tick early.

    Returns:
        Ids of the channels attempted during this tick.
    """

    now = now or utc_now()
    hooks = hooks or TickHooks()
    try:
        reservoir.sync_content_tracking()
    except (ReservoirError, OSError) as exc:
        LOGGER.warning("[sync] failed: %s", describe_error(exc))

    attempted: List[str] = []
    for channel in reservoir.list_channels():
        if cancel_token is not None and cancel_token.is_cancelled():
            break
        if not _is_due(channel, state, now):
            continue
        state.attempted_at_by_channel[channel.id] = now
        state.last_attempt_at_by_channel[channel.id] = isoformat_utc(now)
        attempted.append(channel.id)
        try:
            result = reservoir.fetch_channel(channel.id)
        except Exception as exc:  # pylint: disable=broad-except
            message = describe_error(exc)
            state.last_error_by_channel[channel.id] = message
            if hooks.on_fetch_error is not None:
                hooks.on_fetch_error(channel.id, message)
            continue
        state.last_fetch_at_by_channel[channel.id] = utc_now_iso()
        state.last_error_by_channel.pop(channel.id, None)
        if hooks.on_fetch_success is not None:
            item_count = len(result) if isinstance(result, list) else None
            hooks.on_fetch_success(channel.id, item_count)
    return attempted


class _ResyncHandler(FileSystemEventHandler):
    def __init__(self, schedule: Callable[[], None]) -> None:
        super().__init__()
        self._schedule = schedule

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if os.path.basename(str(event.src_path)).startswith(".part-"):
            return
        self._schedule()


def _log_fetch_success(channel_id: str, item_count: Optional[int]) -> None:
    suffix = "" if item_count is None else f" ({item_count} item(s))"
    LOGGER.info("[%s] fetched%s", channel_id, suffix, extra={"channel_id": channel_id, "stage": "fetch"})


def _log_fetch_error(channel_id: str, message: str) -> None:
    LOGGER.error("[%s] fetch failed: %s", channel_id, message, extra={"channel_id": channel_id, "stage": "fetch"})


class BackgroundFetcher:
    """Long-running scheduler bound to one reservoir directory.

    Attributes:
        root: Reservoir directory.
        cancel_token: Token ending :meth:`run` at the next tick boundary.
    """

    def __init__(
        self,
        root: Path,
        *,
        settings: Optional[ReservoirSettings] = None,
        reservoir: Optional[Reservoir] = None,
        tick_interval: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
        install_signal_handlers: bool = True,
        watch: bool = True,
    ) -> None:
        self.root = Path(root).resolve()
        self._settings = settings or get_settings()
        self._reservoir = reservoir
        self.tick_interval = tick_interval if tick_interval is not None else self._settings.tick_interval
        self.cancel_token = cancel_token or CancellationToken()
        self._on_shutdown = on_shutdown
        self._install_signal_handlers = install_signal_handlers
        self._watch = watch
        self._timer_lock = threading.Lock()
        self._pending_resync: Optional[threading.Timer] = None
        self._observer: Optional[Any] = None
        self._previous_handlers: dict = {}
        self.state = SchedulerState()
        self.pid = os.getpid()

    @property
    def reservoir(self) -> Reservoir:
        if self._reservoir is None:
            self._reservoir = Reservoir.load(self.root, settings=self._settings)
        return self._reservoir

    # ------------------------------------------------------------------
    # Filesystem watching
    # ------------------------------------------------------------------
    def _resync(self) -> None:
        with self._timer_lock:
            self._pending_resync = None
        if self.cancel_token.is_cancelled():
            return
        try:
            self.reservoir.sync_content_tracking()
        except (ReservoirError, OSError) as exc:
            LOGGER.error("[sync] failed: %s", describe_error(exc))

    def schedule_resync(self) -> None:
        """(Re)start the debounce timer for a filesystem-triggered resync."""

        with self._timer_lock:
            if self._pending_resync is not None:
                self._pending_resync.cancel()
            timer = threading.Timer(RESYNC_DEBOUNCE_SECONDS, self._resync)
            timer.daemon = True
            self._pending_resync = timer
            timer.start()

    def _start_watcher(self) -> None:
        channels_dir = self.root / CHANNELS_DIR
        if not self._watch or not channels_dir.is_dir():
            return
        observer = Observer()
        observer.schedule(_ResyncHandler(self.schedule_resync), str(channels_dir), recursive=True)
        observer.daemon = True
        try:
            observer.start()
        except OSError as exc:
            LOGGER.warning("Filesystem watcher unavailable for %s: %s", channels_dir, exc)
            return
        self._observer = observer

    def _stop_watcher(self) -> None:
        with self._timer_lock:
            if self._pending_resync is not None:
                self._pending_resync.cancel()
                self._pending_resync = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    def _handle_signal(self, signum: int, _frame: Any) -> None:
        LOGGER.info("Received signal %d; stopping background fetcher", signum)
        self.cancel_token.cancel()

    def _install_signals(self) -> None:
        if not self._install_signal_handlers or threading.current_thread() is not threading.main_thread():
            return
        for signum in (signal.SIGTERM, signal.SIGINT):
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def _restore_signals(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def persist(self) -> None:
        write_status(self.root, self.pid, self.state)

    def run(self, *, max_ticks: Optional[int] = None) -> SchedulerState:
        """Run until cancelled (or for ``max_ticks`` ticks) and return the final state."""

        reservoir = self.reservoir
        reservoir.sync_content_tracking()
        self.state = SchedulerState.restore(read_status(self.root))
        hooks = TickHooks(on_fetch_success=_log_fetch_success, on_fetch_error=_log_fetch_error)

        self._install_signals()
        self._start_watcher()
        ticks = 0
        try:
            self.persist()
            LOGGER.info("Background fetcher started (pid %d)", self.pid)
            while not self.cancel_token.is_cancelled():
                run_scheduled_fetch_tick(reservoir, self.state, hooks=hooks, cancel_token=self.cancel_token)
                self.persist()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                if self.cancel_token.wait(self.tick_interval):
                    break
        finally:
            self._stop_watcher()
            self.persist()
            self._restore_signals()
            if self._on_shutdown is not None:
                self._on_shutdown()
            LOGGER.info("Background fetcher stopped (pid %d)", self.pid)
        return self.state
