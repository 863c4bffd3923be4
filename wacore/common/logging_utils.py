"""
Logging helpers shared by the client, the test-double service and the CLI.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_level(level: int | str) -> int:
    """Turn ``"debug"``/``"INFO"``/``10`` into a logging level number."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        msg = f"Unknown log level: {level}"
        raise ValueError(msg)
    return value


def setup_logger(logger: logging.Logger, log_level: int | str) -> logging.Logger:
    """
    Attach a stream handler with the package format to ``logger``.

    The handler is only added once, so repeated client instances sharing a
    module logger do not duplicate output.

    Args:
        logger: The logger instance to configure
        log_level: The logging level to set, as a number or a level name
    """
    level = resolve_level(log_level)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
