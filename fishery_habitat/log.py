"""
Logging setup
=============
Console and optional file logging for a run. Every record carries the
protected-area vintage being processed (``-`` outside a vintage), so lines
from the two layouts can be told apart, including those emitted from
worker threads.
"""

from __future__ import annotations

import contextvars
import json
import logging
from contextlib import contextmanager
from logging import Logger
from logging.config import dictConfig
from typing import Iterator, Optional

DEFAULT_LEVEL = "WARNING"
NO_VINTAGE = "-"

_current_vintage: contextvars.ContextVar[str] = contextvars.ContextVar(
    "fishery_habitat_vintage", default=NO_VINTAGE
)


@contextmanager
def vintage_context(name: str) -> Iterator[None]:
    """Tag records logged inside the block with vintage ``name``."""

    token = _current_vintage.set(name)
    try:
        yield
    finally:
        _current_vintage.reset(token)


def current_vintage() -> str:
    return _current_vintage.get()


class VintageFilter(logging.Filter):
    """Copies the active vintage onto each record as ``record.vintage``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "vintage"):
            record.vintage = current_vintage()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "vintage": getattr(record, "vintage", NO_VINTAGE),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(
    *,
    level: str = DEFAULT_LEVEL,
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install the run's handlers on the root logger.

    Plain lines read ``time | LEVEL | vintage | logger | message``.
    """

    if json_logs:
        formatter = {"()": JSONFormatter, "datefmt": "%Y-%m-%dT%H:%M:%S"}
    else:
        formatter = {
            "format": "%(asctime)s | %(levelname)s | %(vintage)s | %(name)s | %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
        }

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "run",
            "filters": ["vintage"],
        }
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": log_file,
            "encoding": "utf-8",
            "formatter": "run",
            "filters": ["vintage"],
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"vintage": {"()": VintageFilter}},
            "formatters": {"run": formatter},
            "handlers": handlers,
            "root": {"handlers": list(handlers), "level": level.upper()},
        }
    )


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)
