"""
Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)`` and pass structured
context with ``extra={...}``. This module only installs handlers and
formats; call it once per process (worker launcher, worker child).
"""

import logging
import logging.config
from typing import Any

from quillpress.core.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes present on every LogRecord; anything else came from ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "task_name", "task_id"}


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not context:
            return base
        pairs = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{base} | {pairs}"


def build_logging_config(settings: Settings) -> dict[str, Any]:
    """Build a ``dictConfig`` mapping for the given settings."""
    level = "DEBUG" if settings.debug else settings.log_level.upper()
    formatter = "context" if settings.log_json else "plain"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            "context": {
                "()": ContextFormatter,
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            # Provider SDKs are chatty at INFO
            "httpx": {"level": "WARNING"},
            "botocore": {"level": "WARNING"},
            "openai": {"level": "WARNING"},
        },
    }


def configure_logging(settings: Settings) -> None:
    """Install the logging configuration for this process."""
    logging.config.dictConfig(build_logging_config(settings))
