"""
Project-wide logging setup.

Usage in any module or script:

    from atlas_residence.logging_utils import get_logger
    logger = get_logger(__name__)
    logger.info("Processing %d individuals", n)

Pipeline scripts can also keep a run log next to their outputs:

    logger = get_logger(__name__, log_file="data/patches/run.log")
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def get_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Path | str | None = None,
) -> logging.Logger:
    """
    Return a named logger writing to stdout, and optionally to a file.

    Each handler is attached once per logger, so repeated calls with the
    same name (and file) never duplicate lines.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(handler)

    if log_file is not None:
        path = Path(os.path.abspath(log_file))
        attached = {
            Path(h.baseFilename) for h in logger.handlers if isinstance(h, logging.FileHandler)
        }
        if path not in attached:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(fmt=_FORMAT))
            logger.addHandler(file_handler)

    return logger
