"""
Logging setup.

Configures the loguru logger: stderr always, plus a rotating file sink
when a path is given.
"""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[contract]: <10} | <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Replace loguru's default sink with the pointledger sinks."""
    logger.remove()
    logger.configure(extra={"contract": "-"})
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level.upper(),
            format=LOG_FORMAT,
            encoding="utf-8",
        )
