"""
Loguru sink configuration for hosts embedding the engine.

The engine only emits through `loguru.logger`; it never installs sinks
on import. Call `configure_logging()` once at process start.
"""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{function} | {message}"


def configure_logging(level: str | None = None, sink=sys.stderr) -> int:
    """
    Replace the default loguru handler with one at the configured level.

    Args:
        level: Loguru level name; defaults to `Settings.log_level`
        sink: Any loguru sink (stream, path, callable)

    Returns:
        The handler id, for `logger.remove(handler_id)`
    """
    if level is None:
        from config import get_settings

        level = get_settings().log_level
    logger.remove()
    return logger.add(sink, level=level.upper(), format=LOG_FORMAT)
