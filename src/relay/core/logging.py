"""Logging helpers for Relay."""
from __future__ import annotations

from logging.config import dictConfig
from typing import Any, Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers kept quieter than the application level.
LIBRARY_LOGGER_LEVELS = {
    # Batch sends log one line per request at INFO.
    "httpx": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


def build_logging_config(level: str = "INFO", fmt: Optional[str] = None) -> Dict[str, Any]:
    """Return the dictConfig mapping for the console handler and Relay loggers."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"standard": {"format": fmt or DEFAULT_LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
            }
        },
        "loggers": {
            "relay": {"level": level.upper()},
            **{name: {"level": logger_level} for name, logger_level in LIBRARY_LOGGER_LEVELS.items()},
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
    }


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure application logging using dictConfig."""

    dictConfig(build_logging_config(level, fmt))
