"""
Logging setup for the API process and the maintenance scripts.

Modules only ever call ``logging.getLogger(__name__)``; handlers and levels are
installed here, once, through ``dictConfig``.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown the import and bulk-job lines at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "multipart")

_is_configured = False


def build_logging_config(level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT}},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "plain",
            }
        },
        "root": {"handlers": ["stdout"], "level": level},
        "loggers": {
            "gestionale": {"level": level},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install the stdout handler and levels; later calls are no-ops.

    Args:
        level: Level name for the root and ``gestionale`` loggers, default INFO.
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        log_level = "INFO"

    dictConfig(build_logging_config(log_level))
    _is_configured = True
    logging.getLogger(__name__).debug("Logging configured at %s", log_level)
