# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.reservoir",
#   "purpose": "Control surface wiring the ledger, channel store and lifecycle engines together",
#   "sections": [
#     {"id": "reservoir", "name": "Reservoir", "anchor": "class-reservoir", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Reservoir facade.

Responsibilities
----------------
- Initialise and open reservoir directories.
- Expose channel management, fetching, reconciliation, content queries,
  retention locks, eviction and custom fetcher registration as one object used
  by the CLI and the background fetcher.

Design Notes
------------
- The reservoir config is re-read from disk on every access; two processes
  editing the same reservoir always observe each other's changes.
- Operations run under a process-local re-entrant guard so the scheduler loop
  and the filesystem watcher thread never interleave a sync with an ingest.
  Cross-process exclusion covers the identifier ledger only.
"""

from __future__ import annotations

import functools
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, TypeVar, Union

from .channels import ChannelStore
from .config import (
    CONFIG_FILE,
    Channel,
    ChannelConfig,
    ChannelUpdate,
    ReservoirConfig,
    load_reservoir_config,
    save_reservoir_config,
    validate_model,
)
from .content import ContentQuery
from .errors import ReservoirNotFoundError
from .eviction import EvictionEngine, EvictionReport
from .fetchers import Fetcher, list_custom_fetchers, register_custom_fetcher
from .ingest import ContentItem, IngestOrchestrator
from .ledger import IdentifierLedger
from .paths import CHANNELS_DIR
from .reconcile import FilesystemReconciler, SyncReport
from .retention import RetentionLockEngine
from .settings import ReservoirSettings, get_settings, resolve_custom_fetchers_dir

__all__ = ["Reservoir"]

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _guarded(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: "Reservoir", *args: Any, **kwargs: Any) -> Any:
        with self._guard:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class Reservoir:
    """A directory-backed content reservoir.

    Attributes:
        directory: Absolute reservoir root.
        ledger: Identifier ledger rooted at ``directory``.
        store: Channel configuration and metadata store.

    Examples:
        >>> reservoir = Reservoir.initialize(Path("/tmp/res"), max_size_mb=50)  # doctest: +SKIP
        >>> channel = reservoir.add_channel({"name": "HN", "fetch_method": "rss",
        ...                                  "fetch_params": {"url": "https://hnrss.org/frontpage"}})  # doctest: +SKIP
        >>> reservoir.fetch_channel(channel.id)  # doctest: +SKIP
    """

    def __init__(
        self,
        directory: Path,
        *,
        settings: Optional[ReservoirSettings] = None,
        fetcher_resolver: Optional[Callable[[str], Fetcher]] = None,
    ) -> None:
        self.directory = Path(directory).resolve()
        self._settings = settings or get_settings()
        self._guard = threading.RLock()
        self.ledger = IdentifierLedger(
            self.directory,
            lock_timeout=self._settings.lock_timeout,
            poll_interval=self._settings.lock_poll_interval,
        )
        self.store = ChannelStore(self.directory, self.ledger)
        self.reconciler = FilesystemReconciler(self.directory, self.store, self.ledger)
        self.locks = RetentionLockEngine(self.store)
        self.eviction = EvictionEngine(self.store, self.ledger, lambda: self.config)
        self.content = ContentQuery(self.store)
        self.orchestrator = IngestOrchestrator(
            self.directory,
            self.store,
            self.ledger,
            self.reconciler,
            fetcher_resolver=fetcher_resolver,
            fetchers_dir=resolve_custom_fetchers_dir(self._settings),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @classmethod
    def initialize(
        cls,
        directory: Union[str, Path],
        max_size_mb: Optional[float] = None,
        **kwargs: Any,
    ) -> "Reservoir":
        """Create (or re-initialise) a reservoir at ``directory``."""

        root = Path(directory).expanduser().resolve()
        root.mkdir(parents=True, exist_ok=True)
        config = validate_model(ReservoirConfig, {"max_size_mb": max_size_mb})
        save_reservoir_config(root, config)
        (root / CHANNELS_DIR).mkdir(exist_ok=True)
        LOGGER.info("Initialized reservoir at %s", root)
        return cls(root, **kwargs)

    @classmethod
    def load(cls, directory: Union[str, Path], **kwargs: Any) -> "Reservoir":
        """Open an existing reservoir.

        Raises:
            ReservoirNotFoundError: ``directory`` has no ``.res-config.json``.
        """

        root = Path(directory).expanduser().resolve()
        if not (root / CONFIG_FILE).is_file():
            raise ReservoirNotFoundError(str(root))
        return cls(root, **kwargs)

    @property
    def settings(self) -> ReservoirSettings:
        return self._settings

    @property
    def config(self) -> ReservoirConfig:
        raw = load_reservoir_config(self.directory)
        known = {key: value for key, value in raw.items() if key in ReservoirConfig.model_fields}
        return validate_model(ReservoirConfig, known)

    @_guarded
    def set_max_size(self, max_size_mb: Optional[float]) -> EvictionReport:
        """Persist a new size budget and evict immediately if it is exceeded."""

        config = self.config.model_copy(update={"max_size_mb": max_size_mb})
        save_reservoir_config(self.directory, validate_model(ReservoirConfig, config.model_dump()))
        return self.eviction.evict()

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------
    @_guarded
    def add_channel(self, config: Union[ChannelConfig, Mapping[str, Any]]) -> Channel:
        return self.store.create(config)

    @_guarded
    def edit_channel(self, channel_id: str, updates: Union[ChannelUpdate, Mapping[str, Any]]) -> Channel:
        return self.store.update(channel_id, updates)

    @_guarded
    def delete_channel(self, channel_id: str) -> None:
        self.store.delete(channel_id)

    def view_channel(self, channel_id: str) -> Channel:
        return self.store.get(channel_id)

    def list_channels(self) -> List[Channel]:
        return self.store.list()

    # ------------------------------------------------------------------
    # Fetching and reconciliation
    # ------------------------------------------------------------------
    @_guarded
    def fetch_channel(self, channel_id: str) -> List[ContentItem]:
        items = self.orchestrator.ingest(channel_id)
        LOGGER.info(
            "Fetched %d item(s) for %s", len(items), channel_id, extra={"channel_id": channel_id}
        )
        return items

    @_guarded
    def sync_content_tracking(self) -> SyncReport:
        return self.reconciler.sync()

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def list_content(
        self,
        channel_ids: Optional[List[str]] = None,
        *,
        retained: Optional[bool] = None,
        retained_by: Optional[Iterable[str]] = None,
        page_size: Optional[int] = None,
        page_offset: int = 0,
    ) -> List[ContentItem]:
        return self.content.list_content(
            channel_ids,
            retained=retained,
            retained_by=retained_by,
            page_size=page_size,
            page_offset=page_offset,
        )

    def list_retained(self, channel_ids: Optional[List[str]] = None) -> List[ContentItem]:
        return self.content.list_retained(channel_ids)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------
    @_guarded
    def retain_content(self, content_id: str, lock: Optional[str] = None) -> None:
        self.locks.retain_content(content_id, lock)

    @_guarded
    def release_content(self, content_id: str, lock: Optional[str] = None) -> None:
        self.locks.release_content(content_id, lock)

    @_guarded
    def retain_content_range(
        self,
        from_id: Optional[str] = None,
        to_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        lock: Optional[str] = None,
    ) -> int:
        return self.locks.retain_range(from_id, to_id, channel_id, lock)

    @_guarded
    def release_content_range(
        self,
        from_id: Optional[str] = None,
        to_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        lock: Optional[str] = None,
    ) -> int:
        return self.locks.release_range(from_id, to_id, channel_id, lock)

    @_guarded
    def retain_channel(self, channel_id: str, lock: Optional[str] = None) -> Channel:
        return self.locks.retain_channel(channel_id, lock)

    @_guarded
    def release_channel(self, channel_id: str, lock: Optional[str] = None) -> Channel:
        return self.locks.release_channel(channel_id, lock)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------
    @_guarded
    def clean(self) -> EvictionReport:
        """Run one eviction pass against the configured budget."""

        return self.eviction.evict()

    # ------------------------------------------------------------------
    # Custom fetchers
    # ------------------------------------------------------------------
    def register_custom_fetcher(self, name: str, path: Union[str, Path]) -> Path:
        return register_custom_fetcher(name, Path(path), resolve_custom_fetchers_dir(self._settings))

    def list_custom_fetchers(self) -> List[str]:
        return list_custom_fetchers(resolve_custom_fetchers_dir(self._settings))
