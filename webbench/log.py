# webbench/log.py
import logging
from typing import Optional

LOGGER_NAME = "webbench"
LOG_FORMAT = "[%(asctime)s] <%(levelname)s> %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handler: Optional[logging.Handler] = None


def setup_logging(path: Optional[str] = None, level: int = logging.DEBUG) -> logging.Logger:
    """Route the webbench logger to `path` (truncated on open), or silence it."""
    global _handler
    logger = logging.getLogger(LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()

    if path:
        _handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.setLevel(level)
    else:
        _handler = logging.NullHandler()
    logger.addHandler(_handler)
    logger.propagate = False
    return logger
