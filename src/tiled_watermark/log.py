"""Logging configuration for the watermark tools."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "tiled_watermark"


def configure_logging(level: int = logging.INFO, *, console: Console | None = None) -> logging.Logger:
    """
    Attach a rich handler to the package logger and return it.

    Calling it again replaces the handler instead of stacking another one.

    Args:
        level: Logging level applied to the package logger
        console: Console to render log records on; sharing the CLI's console
            keeps log lines from tearing progress bars

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    return logger


__all__ = ["LOGGER_NAME", "configure_logging"]
