"""Structured logging for pub-sub events (publish, subscribe, deliver, release)."""

import logging
import os
import sys
from typing import Optional


def _level_from_env(default: int) -> int:
    raw = (os.environ.get("LOG_LEVEL") or "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Return a configured logger; LOG_LEVEL env sets the level when none is given."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
            )
        )
        logger.addHandler(handler)
        logger.setLevel(level if level is not None else _level_from_env(logging.INFO))
    return logger
