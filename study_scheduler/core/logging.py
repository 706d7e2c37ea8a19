"""Centralized logging configuration."""
from __future__ import annotations

import logging
from logging.config import dictConfig

from study_scheduler.core.context import get_request_id


class RequestIdFilter(logging.Filter):
    """Stamp every record with the active request id ("-" outside requests)."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - minimal logic
        record.request_id = get_request_id() or "-"
        return True


def configure_logging(*, log_level: str = "INFO") -> None:
    """Install the console handler once; later calls are ignored."""
    if getattr(configure_logging, "_configured", False):
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s",
                }
            },
            "filters": {
                "request_id": {
                    "()": "study_scheduler.core.logging.RequestIdFilter",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": log_level,
                    "filters": ["request_id"],
                }
            },
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING"},
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s", log_level)
    setattr(configure_logging, "_configured", True)
