"""
Logging setup shared by the HTTP API and the onboarding console.

The API configures logging when ``onboarding.main`` is imported; the console
configures it from ``--log-level``. Whichever runs first wins.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

# Third-party loggers that would otherwise print one line per backend call
NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


def build_logging_config(level: str) -> Dict[str, Any]:
    """dictConfig payload: one stderr handler, quiet HTTP transport loggers."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "onboarding": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "onboarding",
                "level": level,
            },
        },
        "root": {"handlers": ["stderr"], "level": level},
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
    }


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the onboarding log handler once per process.

    Args:
        level: Level name such as "DEBUG"; defaults to INFO
    """
    global _configured

    if _configured:
        return

    log_level = (level or "INFO").upper()
    dictConfig(build_logging_config(log_level))
    logging.getLogger("onboarding").setLevel(log_level)
    _configured = True
