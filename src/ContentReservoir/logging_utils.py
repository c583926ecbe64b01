"""Logging helpers shared by reservoir commands and the background fetcher."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .settings import get_settings

__all__ = ["JSONFormatter", "setup_logging", "resolve_log_level"]

ROOT_LOGGER_NAME = "ContentReservoir"

_LEVELS = {
    "error": logging.ERROR,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "silent": logging.CRITICAL + 1,
}


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record for the fetcher log."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "channel_id": getattr(record, "channel_id", None),
            "stage": getattr(record, "stage", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def resolve_log_level(level: Optional[str] = None) -> int:
    """Map ``error``/``info``/``debug``/``silent`` (or ``RES_LOG_LEVEL``) to a level."""

    name = (level or get_settings().log_level).strip().lower()
    return _LEVELS.get(name, logging.INFO)


def setup_logging(
    *,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    max_log_size_mb: int = 10,
    stream=None,
) -> logging.Logger:
    """Configure the ``ContentReservoir`` logger tree.

    Args:
        level: Level name; defaults to ``RES_LOG_LEVEL``.
        log_file: Optional path for a rotating JSON-lines log (used by the
            background fetcher).
        max_log_size_mb: Rotation threshold for ``log_file``.
        stream: Console stream; defaults to ``sys.stderr``.

    Returns:
        The configured package logger.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolve_log_level(level))

    for handler in list(logger.handlers):
        if getattr(handler, "_reservoir_managed", False):
            logger.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    console._reservoir_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=3,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._reservoir_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = False
    logging.getLogger("filelock").setLevel(logging.INFO)
    return logger
