"""Logging bootstrap for the rollingball service."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Any, Dict, Optional

RUNTIME_LOG_NAME = "rollingball-runtime.log"

# Per-request access lines drown out the pipeline's own tick logs
QUIET_LOGGERS = ("uvicorn.access",)


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    retention_days: int = 14,
    *,
    log_to_file: bool = True,
    library_level: str = "WARNING",
) -> None:
    """Route ``rollingball.*`` at ``level`` to the console and, optionally,
    a daily-rotated runtime log under ``log_dir``.

    Third-party loggers inherit the root level (``library_level``) so that
    debugging the pipeline does not also turn on pymunk/uvicorn chatter.
    """

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    if log_to_file:
        if log_dir is None:
            log_dir = Path(__file__).resolve().parents[1] / "logs"
        log_dir = Path(log_dir).expanduser()
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers["runtime_file"] = {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "formatter": "default",
            "filename": str(log_dir / RUNTIME_LOG_NAME),
            "when": "midnight",
            "backupCount": max(int(retention_days), 1),
            "utc": True,
            "delay": True,
            "encoding": "utf-8",
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": handlers,
            "loggers": {
                "rollingball": {"level": level},
                **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            },
            "root": {"level": library_level, "handlers": list(handlers)},
        }
    )
    logging.getLogger(__name__).debug(
        "Logging configured (level=%s, file=%s)", level, log_dir / RUNTIME_LOG_NAME if log_to_file else None
    )


__all__ = ["configure_logging", "RUNTIME_LOG_NAME"]
