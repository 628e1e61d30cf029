from __future__ import annotations

"""Logging setup for graphstitch entry points.

Every ``RelationalResolver.get_by_id`` call runs inside a request scope, so
the debug lines it emits (planning, fetches, skipped fields) share one
request id. Handlers installed by :func:`configure_logging` stamp that id on
each record through :class:`RequestContextFilter`.
"""

import contextvars
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator

from .settings import LoggingSettings

NO_REQUEST = "-"

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("graphstitch_request_id", default=NO_REQUEST)


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def get_request_id() -> str:
    return _request_id.get()


@contextmanager
def request_scope(request_id: str | None = None) -> Iterator[str]:
    """Bind a request id for the duration of the block.

    An enclosing scope's id is reused when none is given, so a caller can
    group several resolver calls under one id.
    """
    current = _request_id.get()
    if request_id is None:
        request_id = current if current != NO_REQUEST else new_request_id()
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", NO_REQUEST),
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [req=%(request_id)s] %(message)s"


def _handlers(settings: LoggingSettings) -> tuple[list[logging.Handler], Path | None]:
    handlers: list[logging.Handler] = []
    log_file: Path | None = None
    if settings.log_dir:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        suffix = "jsonl" if settings.jsonl else "log"
        log_file = settings.log_dir / f"graphstitch_{datetime.now():%Y%m%d_%H%M%S}.{suffix}"
        handlers.append(RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=5, encoding="utf-8"))
    if settings.to_stderr or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers, log_file


def configure_logging(settings: LoggingSettings | None = None) -> Path | None:
    """Replace the root handlers according to ``settings``; return the log file, if any."""
    settings = settings or LoggingSettings()

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(settings.level)

    formatter = JsonFormatter() if settings.jsonl else logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    context_filter = RequestContextFilter()
    handlers, log_file = _handlers(settings)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)
    return log_file


__all__ = [
    "JsonFormatter",
    "RequestContextFilter",
    "configure_logging",
    "get_request_id",
    "new_request_id",
    "request_scope",
]
