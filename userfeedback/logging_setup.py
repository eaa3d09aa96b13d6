"""
Process-wide logging configuration.

Records go to stdout and to a size-rotated log file.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "[%(asctime)s]%(message)s[%(funcName)s:%(lineno)d][%(filename)s]"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

MAX_BYTES = 100 * 1024 * 1024
BACKUP_COUNT = 3


def configure_logging(log_path: str, level: str | int = logging.DEBUG) -> logging.Logger:
    """
    Attach console and rotating-file handlers to the root logger.

    Raises OSError if the log directory cannot be created; callers treat that
    as fatal to startup.
    """
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = RotatingFileHandler(
        log_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console_handler)
    root.addHandler(file_handler)
    root.setLevel(level if isinstance(level, int) else level.upper())
    return root
