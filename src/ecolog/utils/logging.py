"""
Logging configuration for ecolog.

Library modules only create loggers; handlers are installed by the CLI.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler


PACKAGE_LOGGER = "ecolog"


def setup_logging(level: str = "WARNING") -> logging.Logger:
    """
    Send ecolog log records to stderr through rich.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The package logger
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(numeric)
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return logging.getLogger(name)
