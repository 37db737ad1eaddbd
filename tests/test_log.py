import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from tiled_watermark.log import LOGGER_NAME, configure_logging


def test_configure_logging_replaces_handler():
    configure_logging(logging.INFO)
    logger = configure_logging(logging.DEBUG)

    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert sum(isinstance(h, RichHandler) for h in logger.handlers) == 1
    assert logger.propagate is False


def test_module_loggers_write_to_console():
    buffer = io.StringIO()
    configure_logging(logging.INFO, console=Console(file=buffer, width=200))

    logging.getLogger("tiled_watermark.processors.image").info("stamped photo.png")

    assert "stamped photo.png" in buffer.getvalue()
