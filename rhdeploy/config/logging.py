"""Logging helpers for rayhunter-deploy."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from typing import Any

import msgspec

from .model import ProvisionConfig

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_ENCODER = msgspec.json.Encoder()


def _extra_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _short_name(name: str, prefix: str) -> str:
    return name[len(prefix) :] if name.startswith(prefix) else name


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per record, logger names relative to ``rhdeploy``."""

    PREFIX = "rhdeploy."

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": _short_name(record.name, self.PREFIX),
            "message": record.getMessage(),
        }
        extra = {
            name: _extra_value(value)
            for name, value in vars(record).items()
            if name not in _RECORD_ATTRS and not name.startswith("_")
        }
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return _ENCODER.encode(entry).decode("utf-8")


class ConsoleFormatter(logging.Formatter):
    """Operator-facing lines with the ``rhdeploy.`` prefix dropped."""

    PREFIX = "rhdeploy."

    def format(self, record: logging.LogRecord) -> str:
        shown = logging.makeLogRecord(vars(record))
        shown.name = _short_name(record.name, self.PREFIX)
        return super().format(shown)


def _stderr_handler() -> Handler:
    return logging.StreamHandler(sys.stderr)


def configure_logging(config: ProvisionConfig) -> None:
    """Configure root logging based on provisioning settings."""

    level_name = "DEBUG" if config.verbose else "INFO"
    formatter = "structured" if config.log_json else "console"
    console_fmt = (
        "%(asctime)s %(levelname)s %(name)s: %(message)s"
        if config.verbose
        else "%(levelname)s %(name)s: %(message)s"
    )

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": "rhdeploy.config.logging.StructuredLogFormatter",
                },
                "console": {
                    "()": "rhdeploy.config.logging.ConsoleFormatter",
                    "fmt": console_fmt,
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "rhdeploy": {
                    "()": _stderr_handler,
                    "level": level_name,
                    "formatter": formatter,
                }
            },
            "root": {
                "level": level_name,
                "handlers": ["rhdeploy"],
            },
            "loggers": {
                # transitions logs every state change at INFO
                "transitions": {"level": "WARNING"},
            },
        }
    )

    logging.getLogger("rhdeploy").debug("Logging configured at level %s", level_name)


__all__ = ["ConsoleFormatter", "StructuredLogFormatter", "configure_logging"]
