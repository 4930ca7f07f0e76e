"""loguru sink setup for the CLI."""

from __future__ import annotations

import sys

from loguru import logger

from config import Settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """Replace loguru's default sink with the configured ones."""
    logger.remove()
    logger.add(sys.stderr, level=(level or settings.log_level).upper(), format=CONSOLE_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
        )
