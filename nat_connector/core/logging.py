from __future__ import annotations

import json
import logging
import sys
from typing import Any

from nat_connector.core.config import get_settings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class TextFormatter(logging.Formatter):
    """Pipe-separated lines with request context appended as [key=value ...]."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = getattr(record, "context", None)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with request context as top-level fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(getattr(record, "context", None) or {})

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JsonFormatter()
    return TextFormatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def configure_logging() -> None:
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(build_formatter(settings.log_format))
    root_logger.addHandler(handler)

    # Silence noisy third-party loggers
    for name in ("botocore", "boto3", "urllib3", "nats"):
        logging.getLogger(name).setLevel(logging.WARNING)
    if settings.health_port:
        # One access line per liveness check otherwise
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class ContextLogger:
    """Logger that attaches request context (subject, request id, batch id) to every record."""

    def __init__(self, name: str, **context: Any) -> None:
        self._logger = logging.getLogger(name)
        self._context = context

    def bind(self, **context: Any) -> "ContextLogger":
        return ContextLogger(self._logger.name, **{**self._context, **context})

    def _log(self, level: str, message: str, *args: Any, **extra: Any) -> None:
        context = {k: v for k, v in {**self._context, **extra}.items() if v}
        getattr(self._logger, level)(message, *args, extra={"context": context})

    def info(self, message: str, *args: Any, **extra: Any) -> None:
        self._log("info", message, *args, **extra)

    def warning(self, message: str, *args: Any, **extra: Any) -> None:
        self._log("warning", message, *args, **extra)

    def error(self, message: str, *args: Any, **extra: Any) -> None:
        self._log("error", message, *args, **extra)

    def exception(self, message: str, *args: Any, **extra: Any) -> None:
        self._log("exception", message, *args, **extra)

    def debug(self, message: str, *args: Any, **extra: Any) -> None:
        self._log("debug", message, *args, **extra)
