"""Structured logging for the bot process."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping

from group_access.core.config import AppSettings

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS: FrozenSet[str] = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Promoted to the top level so a request or grant can be followed across threads.
CORRELATION_FIELDS = ("request_id", "membership")

# Slack and uvicorn install their own handlers; these are re-routed to the root
# handler. Levels are floors applied on top of the configured level.
THIRD_PARTY_LOGGERS: Mapping[str, int] = {
    "uvicorn": logging.NOTSET,
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.NOTSET,
    "slack_bolt": logging.NOTSET,
    "slack_sdk": logging.NOTSET,
    "slack_sdk.socket_mode": logging.INFO,
    "httpx": logging.WARNING,
}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra=`` fields kept structured."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "event": record.getMessage(),
            "service": self.service_name,
        }

        extra = {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}
        for field in CORRELATION_FIELDS:
            if field in extra:
                entry[field] = extra.pop(field)
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_logging(settings: AppSettings) -> None:
    """Install one stdout handler on the root logger and route library loggers to it."""

    level = getattr(logging, settings.log_level, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    if settings.log_json:
        handler.setFormatter(JsonFormatter(settings.service_name))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s")
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for logger_name, floor in THIRD_PARTY_LOGGERS.items():
        library_logger = logging.getLogger(logger_name)
        library_logger.handlers = []
        library_logger.propagate = True
        library_logger.setLevel(max(level, floor) if floor else logging.NOTSET)
