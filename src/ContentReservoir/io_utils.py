# === NAVMAP v1 ===
# {
#   "module": "ContentReservoir.io_utils",
#   "purpose": "Atomic file writes and tolerant JSON reads for reservoir state",
#   "sections": [
#     {"id": "atomic-write-bytes", "name": "atomic_write_bytes", "anchor": "function-atomic-write-bytes", "kind": "function"},
#     {"id": "atomic-write-text", "name": "atomic_write_text", "anchor": "function-atomic-write-text", "kind": "function"},
#     {"id": "atomic-write-json", "name": "atomic_write_json", "anchor": "function-atomic-write-json", "kind": "function"},
#     {"id": "read-json", "name": "read_json", "anchor": "function-read-json", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Atomic persistence helpers.

Every durable document in a reservoir (counter, id map, channel config, item
metadata, fetched Markdown) is written through :func:`atomic_write_bytes`, so a
reader in another process sees either the previous or the new content and never
a torn file.

**Atomicity guarantee:**

- Writes go to a temporary file in the destination directory
- The temporary file is fsynced, then moved into place with ``os.replace``
- The directory is fsynced where the platform supports it
- On error the temporary file is removed
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

__all__ = [
    "atomic_write_bytes",
    "atomic_write_text",
    "atomic_write_json",
    "read_json",
    "tree_size",
]

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _fsync_directory(directory: str) -> None:
    flag = getattr(os, "O_DIRECTORY", None)
    if flag is None:
        return
    dir_fd = os.open(directory, flag)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write_bytes(dest_path: PathLike, payload: bytes) -> int:
    """Write ``payload`` to ``dest_path`` atomically.

    Args:
        dest_path: Destination file. Parent directories are created.
        payload: Bytes to persist.

    Returns:
        Number of bytes written.
    """

    dest = os.fspath(dest_path)
    dest_dir = os.path.dirname(dest) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb", buffering=0) as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, dest)
        _fsync_directory(dest_dir)
        return len(payload)
    except Exception:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


def atomic_write_text(dest_path: PathLike, text: str) -> int:
    """UTF-8 encode ``text`` and write it atomically."""

    return atomic_write_bytes(dest_path, text.encode("utf-8"))


def atomic_write_json(dest_path: PathLike, payload: Any) -> int:
    """Serialise ``payload`` as indented JSON and write it atomically."""

    return atomic_write_text(dest_path, json.dumps(payload, indent=2) + "\n")


def read_json(path: PathLike, default: Any = None) -> Any:
    """Return parsed JSON from ``path`` or ``default`` when missing or malformed."""

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    except OSError as exc:
        LOGGER.debug("Unable to read %s: %s", path, exc)
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.debug("Ignoring malformed JSON document at %s", path)
        return default


def tree_size(root: PathLike) -> int:
    """Return the total size in bytes of every regular file below ``root``."""

    base = Path(root)
    if not base.exists():
        return 0
    total = 0
    for dirpath, _dirnames, filenames in os.walk(base):
        for name in filenames:
            try:
                total += os.stat(os.path.join(dirpath, name)).st_size
            except FileNotFoundError:
                continue
    return total
