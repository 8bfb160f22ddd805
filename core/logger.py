"""Logging setup for StudyTrack.

Every module logs through a child of the ``studytrack`` logger; handlers are
installed once by setup_logging() from the server or TUI entry point.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.workspace import logs_dir

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(filename)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER = "studytrack"


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, e.g. get_logger("lifecycle") -> studytrack.lifecycle."""
    name = name.rsplit(".", 1)[-1]
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    root: Path | None = None,
    level: int = logging.INFO,
    console: bool = False,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    file_handler_name = f"{ROOT_LOGGER}:file"
    if not any(h.get_name() == file_handler_name for h in logger.handlers):
        log_dir = logs_dir(root)
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            filename=log_dir / f"{ROOT_LOGGER}.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(fmt)
        handler.set_name(file_handler_name)
        logger.addHandler(handler)

    console_handler_name = f"{ROOT_LOGGER}:console"
    if console and not any(h.get_name() == console_handler_name for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(fmt)
        handler.set_name(console_handler_name)
        logger.addHandler(handler)

    return logger
