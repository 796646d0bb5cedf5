import logging
from typing import Optional

from .config import Config


HANDLER_NAME = "cartsync-stdout"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Attach a stdout handler to the package logger.

    Format comes from Config.LOG_FORMAT, level from Config.LOG_LEVEL unless
    one is passed explicitly. Calling it twice does not duplicate handlers.
    """
    logger = logging.getLogger("cartsync")
    logger.setLevel((level or Config.LOG_LEVEL).upper())

    if any(handler.get_name() == HANDLER_NAME for handler in logger.handlers):
        return

    stream_handler = logging.StreamHandler()
    stream_handler.set_name(HANDLER_NAME)
    stream_handler.setFormatter(logging.Formatter(Config.LOG_FORMAT))
    logger.addHandler(stream_handler)
