import logging
import sys

from speedrelay.config import LOG_DATETIME_FORMAT, LOG_FORMAT, LOG_LEVEL, LOGGER_NAME

# By default python prints to stderr and has no date format in logs.
# Users embedding the coordinator can reconfigure the logger after import.
_formatter: logging.Formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATETIME_FORMAT)
_handler: logging.StreamHandler = logging.StreamHandler(sys.stdout)
_handler.setLevel(LOG_LEVEL)
_handler.setFormatter(_formatter)


# Modules can use logging.getLogger(__name__) and inherit this logger's handler
logger: logging.Logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(LOG_LEVEL)
logger.addHandler(_handler)


def set_log_level(level: str) -> None:
    """Change the level of the package logger and its handler at runtime."""
    level = level.upper()
    logger.setLevel(level)
    _handler.setLevel(level)
