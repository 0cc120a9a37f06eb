from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(levelname)s | %(message)s"


def resolve_level(explicit: Optional[str] = None) -> int:
    """Map an explicit level name, or TM_LOG_LEVEL, to a logging level (INFO when unknown)."""
    name = (explicit or os.getenv("TM_LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logging.basicConfig(level=resolve_level(), format=LOG_FORMAT)
    return logger


def set_level(level: Optional[str]) -> None:
    """Override the root level after startup (used by the CLI --log-level flag)."""
    if level:
        logging.getLogger().setLevel(resolve_level(level))
