# This module contains a custom formatter for logging messages with different log levels.
import logging
import os
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
        formatter = CustomFormatter()
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
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


ROOT_LOGGER_NAME = "deskstaff"
PLAIN_FORMAT = '[%(levelname)s] %(asctime)s - %(name)s - %(message)s'

_root = logging.getLogger(ROOT_LOGGER_NAME)
if not _root.handlers:
    # console handler shared by every module logger
    _ch = logging.StreamHandler()
    _ch.setLevel(logging.DEBUG)
    _ch.setFormatter(CustomFormatter())
    _root.addHandler(_ch)
    _root.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger nested under the application root logger.

    Args:
        name: Usually the calling module's ``__name__``.

    Returns:
        logging.Logger: A child of the ``deskstaff`` logger.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_file_logging(log_file: Optional[str], level: int = logging.INFO) -> logging.Logger:
    """
    Set the application log level and optionally mirror records to a file.

    Args:
        log_file: Path of the log file, or None to log to the console only.
        level: Logging level applied to the root application logger.

    Returns:
        logging.Logger: The configured application root logger.
    """
    _root.setLevel(level)

    if log_file:
        already = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in _root.handlers
        )
        if not already:
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(PLAIN_FORMAT))
            _root.addHandler(fh)

    return _root
