# contacthub/utils/logging_config.py
"""
Logging setup for the Flask app and the ingestion pipeline loggers.

Handlers are configured from ``MonitoringConfig`` values already loaded into
``app.config``: a console stream handler and a size-rotated file handler, each
emitting either JSON lines or plain text.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask import Flask

# Attributes present on every LogRecord; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)

PIPELINE_LOGGER_NAME = "contacthub"
TEXT_FORMAT = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render records as one JSON object per line, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(log_format: str) -> logging.Formatter:
    if (log_format or "").lower() == "json":
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app: Flask) -> None:
    """
    (Re)configure handlers on the Flask app logger and the pipeline logger.

    Safe to call repeatedly; previously installed handlers are replaced.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app.config.get("LOG_FORMAT", "json"))

    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "contacthub.log"),
            maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
            backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for logger in (app.logger, logging.getLogger(PIPELINE_LOGGER_NAME)):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(level)

    app.logger.debug(
        "Logging configured",
        extra={"log_level": level_name, "log_handlers": [type(handler).__name__ for handler in handlers]},
    )
