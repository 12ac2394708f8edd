"""
Logging Configuration
=====================

Sets up the ``art_import`` logger: a rich console handler plus an optional
plain-text file handler for full debug logs.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "art_import"

FILE_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int | str = logging.INFO,
    log_file: Path | str | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling this again replaces the handlers it installed before.

    Args:
        level: Console log level
        log_file: Optional file that receives every record at DEBUG level
        console: Rich console to log to (defaults to stderr)

    Returns:
        The configured ``art_import`` logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        logger.addHandler(file_handler)
        logger.debug(f"Logging to file: {path}")

    return logger
