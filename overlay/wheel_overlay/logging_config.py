"""Logging bootstrap for the overlay service."""
from __future__ import annotations

from logging.config import dictConfig
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "overlay-runtime.log"

# Library loggers that flood INFO with per-connection chatter.
QUIET_LOGGERS = ("websockets", "uvicorn.access")


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None, retention_days: int = 14) -> Path:
    """Console plus a midnight-rotated runtime log; returns the log file path."""

    level = str(level).upper()
    if log_dir is None:
        log_dir = Path(__file__).resolve().parents[2] / "logs"
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                },
                "runtime_file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "default",
                    "level": level,
                    "filename": str(log_file),
                    "when": "midnight",
                    "backupCount": max(int(retention_days), 1),
                    "utc": True,
                    "delay": True,
                    "encoding": "utf-8",
                },
            },
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
            "root": {"level": level, "handlers": ["console", "runtime_file"]},
        }
    )
    return log_file


__all__ = ["LOG_FILE_NAME", "configure_logging"]
