"""User-supplied fetcher executables.

A custom fetcher is any executable registered under the fetchers directory. It
runs in an ephemeral working directory containing an empty ``outs/`` folder,
receives the channel's fetch params as ``key=value`` arguments and the channel
id in ``RES_CHANNEL_ID``, and writes one ``outs/<name>.md`` per item. Files
under ``outs/<name>/`` travel with that item as auxiliary resources.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
import tempfile
from pathlib import Path
from typing import List, Mapping, Optional

from ..errors import FetchError, InvalidInputError
from ..fetch_params import fetch_params_to_cli_args
from ..settings import resolve_custom_fetchers_dir
from .base import FetchedContent, SupplementaryFile

__all__ = [
    "CustomFetcher",
    "register_custom_fetcher",
    "list_custom_fetchers",
]

LOGGER = logging.getLogger(__name__)

OUTS_DIR = "outs"
CHANNEL_ID_ENV = "RES_CHANNEL_ID"


def _collect_supplementary_files(resources_root: Path) -> List[SupplementaryFile]:
    files: List[SupplementaryFile] = []
    for path in sorted(resources_root.rglob("*")):
        if path.is_file():
            relative = path.relative_to(resources_root).as_posix()
            files.append(SupplementaryFile(relative_path=relative, content=path.read_bytes()))
    return files


class CustomFetcher:
    """Run an executable and collect the Markdown files it leaves in ``outs/``."""

    def __init__(self, executable: Path, *, timeout: Optional[float] = None) -> None:
        self.executable = Path(executable)
        self.timeout = timeout

    def fetch(self, fetch_params: Mapping[str, str], channel_id: str) -> List[FetchedContent]:
        executable = self.executable.expanduser().resolve()
        if not executable.is_file():
            raise FetchError(f"Custom fetcher not found: {executable}", channel_id=channel_id)

        with tempfile.TemporaryDirectory(prefix="res-fetch-custom-") as workdir:
            outs = Path(workdir) / OUTS_DIR
            outs.mkdir()
            env = {**os.environ, CHANNEL_ID_ENV: channel_id}
            try:
                completed = subprocess.run(
                    [str(executable), *fetch_params_to_cli_args(fetch_params)],
                    cwd=workdir,
                    env=env,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise FetchError(
                    f"Custom fetcher {executable.name} failed: {exc}", channel_id=channel_id
                ) from exc
            if completed.returncode != 0:
                stderr = (completed.stderr or "").strip()
                message = f"Custom fetcher {executable.name} exited with status {completed.returncode}"
                if stderr:
                    message = f"{message}: {stderr}"
                raise FetchError(
                    message,
                    channel_id=channel_id,
                    details={"returncode": completed.returncode, "stderr": stderr},
                )
            if completed.stderr:
                LOGGER.debug("%s stderr: %s", executable.name, completed.stderr.strip())

            items: List[FetchedContent] = []
            for markdown in sorted(outs.iterdir()):
                if not markdown.is_file() or markdown.suffix.lower() != ".md":
                    continue
                resources = outs / markdown.stem
                items.append(
                    FetchedContent(
                        content=markdown.read_text(encoding="utf-8", errors="replace"),
                        source_file_name=markdown.name,
                        supplementary_files=(
                            _collect_supplementary_files(resources) if resources.is_dir() else []
                        ),
                    )
                )
        return items


def register_custom_fetcher(name: str, source: Path, fetchers_dir: Optional[Path] = None) -> Path:
    """Copy ``source`` into the fetchers directory as ``name`` and mark it executable.

    Raises:
        InvalidInputError: If ``name`` is blank, shadows a path, or ``source``
            is not a file.
    """

    normalized = name.strip()
    if not normalized or "/" in normalized or "\\" in normalized or normalized in (".", ".."):
        raise InvalidInputError(f"Invalid fetcher name: {name!r}", field="name")
    source = Path(source).expanduser()
    if not source.is_file():
        raise InvalidInputError(f"Fetcher executable not found: {source}", field="path")
    target_dir = fetchers_dir or resolve_custom_fetchers_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / normalized
    shutil.copyfile(source, target)
    mode = target.stat().st_mode
    target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    LOGGER.info("Registered custom fetcher %s at %s", normalized, target)
    return target


def list_custom_fetchers(fetchers_dir: Optional[Path] = None) -> List[str]:
    target_dir = fetchers_dir or resolve_custom_fetchers_dir()
    if not target_dir.is_dir():
        return []
    return sorted(path.name for path in target_dir.iterdir() if path.is_file())
