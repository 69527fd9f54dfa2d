"""Logging configuration for Basket Sync."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """Configure the package logger to write through Rich on stderr.

    Args:
        level: Logging level name or number

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("basket_sync")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format=LOG_DATE_FORMAT,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    # aiohttp logs every connection failure we already report
    logging.getLogger("aiohttp").setLevel(logging.ERROR)
    return logger
