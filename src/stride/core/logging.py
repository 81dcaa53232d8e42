"""Logging setup driven by :class:`~stride.config.schema.LoggingConfig`."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stride.config.schema import LoggingConfig

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Chatty third-party loggers kept at WARNING regardless of our level.
_QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "stripe")


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger from *config*.

    Replaces any handlers previously installed by this function so it
    is safe to call more than once (tests, ``serve --reload``).
    """
    root = logging.getLogger()
    root.setLevel(config.level.upper())

    for handler in list(root.handlers):
        if getattr(handler, "_stride", False):
            root.removeHandler(handler)

    handler: logging.Handler
    if config.file:
        handler = logging.FileHandler(config.file)
    else:
        handler = logging.StreamHandler()
    handler._stride = True  # type: ignore[attr-defined]

    if config.structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
