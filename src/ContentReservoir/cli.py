"""Typer-based ``res`` command line for content reservoirs."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import scheduler
from .errors import ReservoirError
from .fetch_params import apply_fetch_param_patch, fetch_params_from_patch
from .logging_utils import setup_logging
from .reservoir import Reservoir
from .scheduler.state import log_path

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="Reservoir: collect web content into local Markdown directories",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Reservoir configuration", no_args_is_help=True)
channel_app = typer.Typer(help="Manage channels", no_args_is_help=True)
content_app = typer.Typer(help="Query stored content", no_args_is_help=True)
retain_app = typer.Typer(help="Apply retention locks", no_args_is_help=True)
release_app = typer.Typer(help="Release retention locks", no_args_is_help=True)
fetcher_app = typer.Typer(help="Control the background fetcher", no_args_is_help=True)
fetchers_app = typer.Typer(help="Manage custom fetcher executables", no_args_is_help=True)
app.add_typer(config_app, name="config")
app.add_typer(channel_app, name="channel")
app.add_typer(content_app, name="content")
app.add_typer(retain_app, name="retain")
app.add_typer(release_app, name="release")
app.add_typer(fetcher_app, name="fetcher")
app.add_typer(fetchers_app, name="fetchers")

_state: Dict[str, Any] = {"verbose": False}

# ============================================================================
# Shared options and helpers
# ============================================================================


def _dir_option() -> Any:
    return typer.Option(Path("."), "--dir", envvar="RES_DIR", help="Reservoir directory")


def _lock_option() -> Any:
    return typer.Option(None, "--lock", "-l", help="Lock name (default: global)")


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except ReservoirError as exc:
        if _state["verbose"]:
            raise
        err_console.print(f"✗ Error: {exc}", style="red", markup=False, highlight=False, soft_wrap=True)
        raise typer.Exit(1) from exc


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _load(directory: Path) -> Reservoir:
    return Reservoir.load(directory)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging; re-raise errors"),
) -> None:
    _state["verbose"] = verbose
    setup_logging(level="debug" if verbose else None)


# ============================================================================
# Reservoir
# ============================================================================


@app.command()
def init(
    directory: Path = _dir_option(),
    max_size: Optional[float] = typer.Option(None, "--max-size", help="Size budget in MB"),
) -> None:
    """Initialize a reservoir directory."""
    with _cli_errors():
        reservoir = Reservoir.initialize(directory, max_size_mb=max_size)
    typer.echo(f"Initialized reservoir at {reservoir.directory}")


@config_app.command("set-max-size")
def set_max_size(
    max_size: float = typer.Argument(..., help="Size budget in MB (0 disables eviction)"),
    directory: Path = _dir_option(),
) -> None:
    """Set the size budget and evict immediately if it is exceeded."""
    with _cli_errors():
        report = _load(directory).set_max_size(max_size)
    typer.echo(f"Max size set to {max_size:g} MB")
    if report.evicted:
        typer.echo(f"Evicted {report.evicted} item(s), freed {report.bytes_freed} bytes")


# ============================================================================
# Channels
# ============================================================================


@channel_app.command("add")
def channel_add(
    name: str = typer.Argument(..., help="Channel name; the id is derived from it"),
    fetch_method: str = typer.Option(..., "--type", "-t", help="rss | web_page | <custom fetcher>"),
    fetch_param: Optional[str] = typer.Option(None, "--fetch-param", help="JSON object of fetch params"),
    rate_limit: Optional[int] = typer.Option(None, "--rate-limit", help="Minimum seconds between fetches"),
    refresh_interval: Optional[int] = typer.Option(None, "--refresh-interval", help="Seconds between fetches"),
    id_field: Optional[str] = typer.Option(None, "--id-field", help="Front matter field used for dedup"),
    duplicate_strategy: Optional[str] = typer.Option(
        None, "--duplicate-strategy", help="overwrite | keep-both"
    ),
    retain_lock: Optional[List[str]] = typer.Option(
        None, "--retain-lock", help="Lock applied to every fetched item (repeatable)"
    ),
    directory: Path = _dir_option(),
) -> None:
    """Add a new channel."""
    with _cli_errors():
        config: Dict[str, Any] = {
            "name": name,
            "fetch_method": fetch_method,
            "fetch_params": fetch_params_from_patch(fetch_param) or {},
        }
        if rate_limit is not None:
            config["rate_limit_interval"] = rate_limit
        if refresh_interval is not None:
            config["refresh_interval"] = refresh_interval
        if id_field is not None:
            config["id_field"] = id_field
        if duplicate_strategy is not None:
            config["duplicate_strategy"] = duplicate_strategy
        if retain_lock:
            config["retained_locks"] = retain_lock
        channel = _load(directory).add_channel(config)
    _echo_json(channel.to_document())


@channel_app.command("edit")
def channel_edit(
    channel_id: str = typer.Argument(..., help="Channel id"),
    name: Optional[str] = typer.Option(None, "--name", help="New channel name"),
    fetch_method: Optional[str] = typer.Option(None, "--type", "-t", help="New fetch method"),
    fetch_param: Optional[str] = typer.Option(
        None, "--fetch-param", help="JSON object patch; null removes a key"
    ),
    rate_limit: Optional[int] = typer.Option(None, "--rate-limit", help="Minimum seconds between fetches"),
    refresh_interval: Optional[int] = typer.Option(None, "--refresh-interval", help="Seconds between fetches"),
    id_field: Optional[str] = typer.Option(None, "--id-field", help="Front matter dedup field ('' clears)"),
    duplicate_strategy: Optional[str] = typer.Option(
        None, "--duplicate-strategy", help="overwrite | keep-both"
    ),
    retain_lock: Optional[List[str]] = typer.Option(
        None, "--retain-lock", help="Replace the auto-applied locks (repeatable)"
    ),
    directory: Path = _dir_option(),
) -> None:
    """Edit an existing channel."""
    with _cli_errors():
        reservoir = _load(directory)
        updates: Dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if fetch_method is not None:
            updates["fetch_method"] = fetch_method
        if fetch_param is not None:
            existing = reservoir.view_channel(channel_id)
            updates["fetch_params"] = apply_fetch_param_patch(existing.fetch_params, fetch_param)
        if rate_limit is not None:
            updates["rate_limit_interval"] = rate_limit
        if refresh_interval is not None:
            updates["refresh_interval"] = refresh_interval
        if id_field is not None:
            updates["id_field"] = id_field
        if duplicate_strategy is not None:
            updates["duplicate_strategy"] = duplicate_strategy
        if retain_lock:
            updates["retained_locks"] = retain_lock
        channel = reservoir.edit_channel(channel_id, updates)
    _echo_json(channel.to_document())


@channel_app.command("delete")
def channel_delete(
    channel_id: str = typer.Argument(..., help="Channel id"),
    directory: Path = _dir_option(),
) -> None:
    """Delete a channel and all its content."""
    with _cli_errors():
        _load(directory).delete_channel(channel_id)
    typer.echo(f"Deleted channel {channel_id}")


@channel_app.command("view")
def channel_view(
    channel_id: str = typer.Argument(..., help="Channel id"),
    directory: Path = _dir_option(),
) -> None:
    """View channel configuration."""
    with _cli_errors():
        channel = _load(directory).view_channel(channel_id)
    _echo_json(channel.to_document())


@channel_app.command("list")
def channel_list(directory: Path = _dir_option()) -> None:
    """List all channels."""
    with _cli_errors():
        channels = _load(directory).list_channels()
    _echo_json([channel.to_document() for channel in channels])


# ============================================================================
# Fetching and reconciliation
# ============================================================================


@app.command()
def fetch(
    channel_id: str = typer.Argument(..., help="Channel id"),
    directory: Path = _dir_option(),
) -> None:
    """Fetch new content for a channel."""
    with _cli_errors():
        items = _load(directory).fetch_channel(channel_id)
    typer.echo(f"Fetched {len(items)} item(s)")


@app.command()
def sync(directory: Path = _dir_option()) -> None:
    """Reconcile metadata and the identifier ledger with files on disk."""
    with _cli_errors():
        report = _load(directory).sync_content_tracking()
    typer.echo(
        f"Synced: {report.removed} removed, {report.discovered} discovered, "
        f"{report.repaired} repaired, {len(report.stale_ledger_ids)} stale id(s) dropped"
    )


@app.command()
def clean(directory: Path = _dir_option()) -> None:
    """Evict unretained content beyond the configured max size."""
    with _cli_errors():
        report = _load(directory).clean()
    typer.echo(f"Evicted {report.evicted} item(s), freed {report.bytes_freed} bytes")


# ============================================================================
# Content
# ============================================================================


@content_app.command("list")
def content_list(
    channel: Optional[List[str]] = typer.Option(None, "--channel", "-c", help="Restrict to channel (repeatable)"),
    retained: Optional[bool] = typer.Option(
        None, "--retained/--not-retained", help="Only retained or only unretained items"
    ),
    retained_by: Optional[str] = typer.Option(None, "--retained-by", help="Comma-separated lock names"),
    page_size: Optional[int] = typer.Option(None, "--page-size", min=1, help="Items per page"),
    page: int = typer.Option(1, "--page", min=1, help="1-based page number"),
    as_json: bool = typer.Option(False, "--json", help="Print items as JSON"),
    directory: Path = _dir_option(),
) -> None:
    """List stored content items."""
    with _cli_errors():
        items = _load(directory).list_content(
            channel or None,
            retained=retained,
            retained_by=retained_by.split(",") if retained_by else None,
            page_size=page_size,
            page_offset=(page - 1) * page_size if page_size else 0,
        )
    if as_json:
        _echo_json([item.to_dict() for item in items])
        return
    if not items:
        typer.echo("No content items.")
        return
    table = Table(title="Content")
    table.add_column("ID", justify="right")
    table.add_column("Channel")
    table.add_column("Title")
    table.add_column("Fetched")
    table.add_column("Locks")
    for item in items:
        table.add_row(item.id, item.channel_id, item.title or "", item.fetched_at or "", ",".join(item.locks))
    console.print(table)


# ============================================================================
# Retention
# ============================================================================


def _range_label(from_id: Optional[str], to_id: Optional[str]) -> str:
    return f"{from_id or 'start'}..{to_id or 'end'}"


@retain_app.command("content")
def retain_content(
    content_id: str = typer.Argument(..., help="Content id"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Retain one content item."""
    with _cli_errors():
        _load(directory).retain_content(content_id, lock)
    typer.echo(f"Retained {content_id}")


@retain_app.command("range")
def retain_range(
    from_id: Optional[str] = typer.Option(None, "--from", help="First content id (inclusive)"),
    to_id: Optional[str] = typer.Option(None, "--to", help="Last content id (inclusive)"),
    channel_id: Optional[str] = typer.Option(None, "--channel", help="Restrict to one channel"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Retain every content item whose id lies in a range."""
    with _cli_errors():
        count = _load(directory).retain_content_range(from_id, to_id, channel_id, lock)
    typer.echo(f"Retained {count} item(s) in {_range_label(from_id, to_id)}")


@retain_app.command("channel")
def retain_channel(
    channel_id: str = typer.Argument(..., help="Channel id"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Apply a lock to every future fetch of a channel."""
    with _cli_errors():
        channel = _load(directory).retain_channel(channel_id, lock)
    _echo_json(channel.to_document())


@release_app.command("content")
def release_content(
    content_id: str = typer.Argument(..., help="Content id"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Release one content item."""
    with _cli_errors():
        _load(directory).release_content(content_id, lock)
    typer.echo(f"Released {content_id}")


@release_app.command("range")
def release_range(
    from_id: Optional[str] = typer.Option(None, "--from", help="First content id (inclusive)"),
    to_id: Optional[str] = typer.Option(None, "--to", help="Last content id (inclusive)"),
    channel_id: Optional[str] = typer.Option(None, "--channel", help="Restrict to one channel"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Release every content item whose id lies in a range."""
    with _cli_errors():
        count = _load(directory).release_content_range(from_id, to_id, channel_id, lock)
    typer.echo(f"Released {count} item(s) in {_range_label(from_id, to_id)}")


@release_app.command("channel")
def release_channel(
    channel_id: str = typer.Argument(..., help="Channel id"),
    lock: Optional[str] = _lock_option(),
    directory: Path = _dir_option(),
) -> None:
    """Stop applying a lock to future fetches of a channel."""
    with _cli_errors():
        channel = _load(directory).release_channel(channel_id, lock)
    _echo_json(channel.to_document())


# ============================================================================
# Background fetcher
# ============================================================================


@fetcher_app.command("start")
def fetcher_start(
    foreground: bool = typer.Option(False, "--foreground", help="Run the loop in this process"),
    directory: Path = _dir_option(),
) -> None:
    """Start the background fetcher."""
    with _cli_errors():
        if foreground:
            root = _load(directory).directory
            setup_logging(
                level="debug" if _state["verbose"] else None,
                log_file=log_path(root),
            )
        pid = scheduler.start(directory, foreground=foreground)
    if not foreground:
        typer.echo(f"Started background fetcher (pid {pid})")


@fetcher_app.command("stop")
def fetcher_stop(directory: Path = _dir_option()) -> None:
    """Stop the background fetcher."""
    with _cli_errors():
        result = scheduler.stop(_load(directory).directory)
    typer.echo(result.message)


@fetcher_app.command("status")
def fetcher_status(directory: Path = _dir_option()) -> None:
    """Show background fetcher status as JSON."""
    with _cli_errors():
        status = scheduler.get_status(_load(directory).directory)
    payload: Dict[str, Any] = {"running": status.running}
    if status.running:
        payload.update(
            {
                "pid": status.pid,
                "started_at": status.started_at,
                "last_heartbeat_at": status.last_heartbeat_at,
                "last_fetch_at_by_channel": status.last_fetch_at_by_channel,
                "last_error_by_channel": status.last_error_by_channel,
            }
        )
    _echo_json(payload)


# ============================================================================
# Custom fetchers
# ============================================================================


@fetchers_app.command("register")
def fetchers_register(
    name: str = typer.Argument(..., help="Fetch method name used by channels"),
    path: Path = typer.Argument(..., help="Executable to copy into the fetchers directory"),
    directory: Path = _dir_option(),
) -> None:
    """Register a custom fetcher executable."""
    with _cli_errors():
        target = _load(directory).register_custom_fetcher(name, path)
    typer.echo(f"Registered fetcher {name} at {target}")


@fetchers_app.command("list")
def fetchers_list(directory: Path = _dir_option()) -> None:
    """List registered custom fetchers."""
    with _cli_errors():
        names = _load(directory).list_custom_fetchers()
    _echo_json(names)


def main() -> None:
    """Console-script entry point."""
    logging.captureWarnings(True)
    app()


if __name__ == "__main__":
    main()
