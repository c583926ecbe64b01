"""Reservoir-relative path helpers and well-known file names."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Union

__all__ = [
    "CHANNELS_DIR",
    "CHANNEL_CONFIG_FILE",
    "CHANNEL_METADATA_FILE",
    "normalize_relative_path",
    "to_relative",
    "resolve_relative",
    "is_within",
    "resources_dir_for",
]

CHANNELS_DIR = "channels"
CHANNEL_CONFIG_FILE = "channel.json"
CHANNEL_METADATA_FILE = "metadata.json"


def normalize_relative_path(value: str) -> str:
    """Trim ``value`` and use ``/`` separators."""

    return value.strip().replace("\\", "/")


def to_relative(root: Path, target: Union[str, Path]) -> str:
    return normalize_relative_path(os.path.relpath(os.fspath(target), os.fspath(root)))


def resolve_relative(root: Path, relative: str) -> Path:
    return root / normalize_relative_path(relative)


def is_within(parent: Path, candidate: Path) -> bool:
    """True when ``candidate`` resolves strictly below ``parent``."""

    try:
        resolved_parent = parent.resolve(strict=False)
        resolved = candidate.resolve(strict=False)
    except OSError:
        return False
    if resolved == resolved_parent:
        return False
    try:
        resolved.relative_to(resolved_parent)
    except ValueError:
        return False
    return True


def resources_dir_for(document: Path) -> Path:
    """Auxiliary-resource directory of ``document``: sibling dir named by its stem."""

    return document.with_suffix("")
