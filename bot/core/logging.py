from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from core.config import LoggingConfig

_PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Ticket identifiers passed through ``extra=`` and kept as JSON fields.
TICKET_CONTEXT_FIELDS = ("guild_id", "channel_id", "ticket_number", "actor_id", "event")


def ticket_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` mapping, dropping unknown or empty fields."""
    return {key: value for key, value in fields.items() if key in TICKET_CONTEXT_FIELDS and value is not None}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in TICKET_CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value) if key == "event" else value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(config: LoggingConfig) -> Path:
    log_dir = Path(config.directory)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.file_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    if config.json_console:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(fmt=_PLAIN_FORMAT, datefmt=_DATE_FORMAT))

    # the file keeps ticket ids as fields so one ticket's history can be grepped out
    file_handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonFormatter())

    for handler in (console_handler, file_handler):
        root_logger.addHandler(handler)

    for name, level in (
        ("discord", logging.INFO),
        ("discord.http", logging.WARNING),
        ("aiohttp", logging.WARNING),
        ("uvicorn.access", logging.WARNING),
    ):
        logging.getLogger(name).setLevel(level)
    return log_file
