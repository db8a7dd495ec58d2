"""Logging configuration for the nodepilot package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries that are too chatty at DEBUG
NOISY_LOGGERS = ('urllib3', 'kubernetes')


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger
        level: The logging level (default: logging.INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(handler)

    return logger


def add_file_handler(
    logger: logging.Logger,
    path: str,
    max_size_mb: int = 100,
    backup_count: int = 5,
) -> Optional[RotatingFileHandler]:
    """Attach a rotating file handler to a logger.

    Args:
        logger: Logger to extend
        path: Log file path, ~ is expanded
        max_size_mb: Size at which the file is rotated
        backup_count: Number of rotated files to keep

    Returns:
        The new handler, or None if the logger already writes to that file
    """
    log_file = Path(path).expanduser().absolute()
    for existing in logger.handlers:
        if isinstance(existing, RotatingFileHandler) and existing.baseFilename == str(log_file):
            return None

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return handler


def quiet_noisy_loggers(debug_mode: bool = False) -> None:
    """Disable debug logging for noisy libraries unless debugging."""
    level = logging.DEBUG if debug_mode else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
