"""Logging helpers for stageguard."""
from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from logging.config import dictConfig
from pathlib import Path
from typing import List, Optional

from .config import LoggingConfig

ACTION_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(config: LoggingConfig) -> None:
    """Configure global logging based on configuration values."""

    level = getattr(logging, config.level.upper(), logging.INFO)
    log_format = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    handler_config = {
        "level": level,
        "formatter": "standard",
    }

    if config.file:
        handler_config.update(
            {
                "class": "logging.handlers.WatchedFileHandler",
                "filename": config.file,
                "encoding": "utf-8",
            }
        )
    else:
        handler_config["class"] = "logging.StreamHandler"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": log_format,
                }
            },
            "handlers": {
                "default": handler_config,
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


class ActionLog:
    """Append-only audit trail of ``[timestamp] message`` lines."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def record(self, message: str, *, when: Optional[datetime] = None) -> None:
        stamp = (when or datetime.now()).strftime(ACTION_TIME_FORMAT)
        # One line per entry keeps tail() trivial.
        text = " ".join(message.splitlines())
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{stamp}] {text}\n")

    def tail(self, lines: int = 50) -> List[str]:
        """Return the last ``lines`` entries; raises FileNotFoundError if absent."""
        if lines <= 0:
            if not self._path.exists():
                raise FileNotFoundError(str(self._path))
            return []
        with self._path.open("r", encoding="utf-8") as handle:
            return [line.rstrip("\n") for line in deque(handle, maxlen=lines)]


def open_action_log(config: LoggingConfig, base_dir: Optional[Path] = None) -> Optional[ActionLog]:
    """Build the configured action log; relative paths resolve under ``base_dir``."""
    if not config.action_log:
        return None
    path = Path(config.action_log)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return ActionLog(path)


__all__ = ["ACTION_TIME_FORMAT", "ActionLog", "configure_logging", "open_action_log"]
