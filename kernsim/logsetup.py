"""Structured JSON logging to standard output and a timestamped file."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from os import PathLike
from pathlib import Path
from typing import Optional, Union

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}

LOGGER_NAME = "kernsim"


def level_by_name(name: str) -> int:
    """Map a level name to a logging level; unknown names give INFO."""
    return _LEVELS.get(name.lower(), logging.INFO)


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Extra key/value pairs are taken from a ``attrs`` mapping passed through
    the ``extra`` argument of the logging call.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .astimezone()
            .isoformat(),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "msg": record.getMessage(),
        }
        attrs = getattr(record, "attrs", None)
        if isinstance(attrs, dict):
            entry.update(attrs)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def build_logger(
    level: str, directory: Optional[Union[str, "PathLike[str]"]] = None
) -> logging.Logger:
    """Configure the package logger to write JSON to stdout and a log file."""
    base = Path(directory) if directory is not None else Path.cwd()
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    log_path = base / f"tp-{stamp}.log"

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter()
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    stream_handler = logging.StreamHandler(sys.stdout)
    for handler in (stream_handler, file_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level_by_name(level))
    logger.propagate = False
    return logger