"""Detached background fetcher entry point: ``python -m ContentReservoir.worker --dir <path>``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import ReservoirError
from .logging_utils import setup_logging
from .scheduler.process import run_foreground
from .scheduler.state import log_path

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ContentReservoir.worker", description=__doc__)
    parser.add_argument("--dir", dest="directory", type=Path, default=Path.cwd(), help="Reservoir directory")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    root = args.directory.expanduser().resolve()
    setup_logging(log_file=log_path(root))
    try:
        run_foreground(root)
    except ReservoirError as exc:
        LOGGER.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
