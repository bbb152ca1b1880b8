"""Logging for dotkc.

Diagnostics go to stderr through Rich so stdout carries only command output
(secret values, dotenv lines, JSON). Everything lives under the ``dotkc``
logger; secret values and key material are never passed to it.
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "dotkc"

# stdout for command output, stderr for messages and logs
console = Console()
err_console = Console(stderr=True)

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Route ``dotkc.*`` loggers to stderr, and optionally to a file.

    Calling it again replaces the previous handlers.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR); unknown
            names fall back to WARNING
        log_file: File that receives DEBUG and above regardless of ``level``

    Returns:
        The ``dotkc`` logger
    """
    console_level = getattr(logging, level.upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    stderr_handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=False,
        markup=False,
    )
    stderr_handler.setLevel(console_level)
    logger.addHandler(stderr_handler)

    logger_level = console_level
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)
        logger_level = logging.DEBUG

    logger.setLevel(logger_level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for a dotkc module, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
