"""
Apply the log level from the environment.

One level for every logger, read from REPEATER_LOG_LEVEL as a level name
(DEBUG, WARN, ...) or a number. Unset or unknown values mean INFO.
"""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "REPEATER_LOG_LEVEL"


def _parse_level(raw: str) -> int:
    name = (raw or "").strip().upper()
    if not name:
        return logging.INFO
    if name.isdigit():
        return int(name)
    # getLevelName maps known names to ints and anything else to "Level <name>"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def level_from_env() -> int:
    return _parse_level(os.environ.get(LOG_LEVEL_ENV, ""))


def apply_log_level(level: int) -> None:
    """Set root logger level so all module loggers follow it."""
    logging.getLogger().setLevel(level)


def apply_log_level_from_env() -> int:
    level = level_from_env()
    apply_log_level(level)
    return level
