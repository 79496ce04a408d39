# This module contains a custom formatter for logging messages with different log levels.
import logging
from typing import Optional


class CustomFormatter(logging.Formatter):
    """
    A custom formatter for logging messages with different log levels.

    Attributes:
        grey (str): ANSI escape sequence for grey color.
        yellow (str): ANSI escape sequence for yellow color.
        red (str): ANSI escape sequence for red color.
        bold_red (str): ANSI escape sequence for bold red color.
        reset (str): ANSI escape sequence to reset color.
        format (str): The log message format.
        FORMATS (dict): A dictionary mapping log levels to their respective log message formats.

    Usage:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter())
    """
    grey = "\x1b[37;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    dark_grey = "\x1b[30;1m"
    reset = "\x1b[0m"
    format = '[%(levelname)s] %(asctime)s - %(name)s - %(message)s'

    FORMATS = {
        logging.DEBUG: dark_grey + format + reset,
        logging.INFO: grey + format + reset,
        logging.WARNING: yellow + format + reset,
        logging.ERROR: red + format + reset,
        logging.CRITICAL: bold_red + format + reset
    }

    def format(self, record):
        """
        Formats the log record based on its log level.

        Args:
            record (logging.LogRecord): The log record to be formatted.

        Returns:
            str: The formatted log message.
        """
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


ROOT_LOGGER_NAME = "feedsync"
PLAIN_FORMAT = '[%(levelname)s] %(asctime)s - %(name)s - %(message)s'


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger nested under the application's root logger.

    Args:
        name: Usually the calling module's ``__name__``.

    Returns:
        logging.Logger: The named logger.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_file_logging(log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure console (colored) and optional file logging for the application.

    Calling this more than once replaces the previously installed handlers.

    Args:
        log_file: Path of the log file, or None for console only.
        level: Logging level for both handlers.

    Returns:
        logging.Logger: The configured root application logger.
    """
    log = logging.getLogger(ROOT_LOGGER_NAME)
    log.setLevel(level)

    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    # console handler
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(CustomFormatter())
    log.addHandler(ch)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(PLAIN_FORMAT))
        log.addHandler(fh)

    return log
