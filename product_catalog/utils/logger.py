"""Logging configuration for the catalog.

Each concern (store, catalog, api, error) gets its own named logger with a
console handler and, outside production, a rotating log file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import get_config


def _file_handler(log_file: Union[str, Path], formatter: logging.Formatter) -> RotatingFileHandler:
    config = get_config()
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.logging.max_bytes,
        backupCount=config.logging.backup_count,
        encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    log_file: Optional[Union[str, Path]] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure a named logger once and return it.

    Args:
        name: Logger name
        log_file: Rotating log file for this logger, if any
        level: Log level overriding ``logging.level`` from the config

    Returns:
        Configured logger instance
    """
    config = get_config()
    log_level = getattr(logging, (level or config.logging.level).upper())

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(config.logging.format)

    # ERROR-only loggers write to stderr so failures stand out from access logs.
    stream = sys.stderr if log_level >= logging.ERROR else sys.stdout
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # No log files in production, where stdout is collected.
    if log_file and not config.is_production:
        logger.addHandler(_file_handler(log_file, formatter))

    return logger


def get_store_logger() -> logging.Logger:
    """Get logger for file persistence and cache activity."""
    config = get_config()
    return setup_logger("store", config.logging.files.store)


def get_catalog_logger() -> logging.Logger:
    """Get logger for catalog business operations."""
    config = get_config()
    return setup_logger("catalog", config.logging.files.catalog)


def get_error_logger() -> logging.Logger:
    """Get logger for error tracking.

    Recovery from a corrupted product file is reported here as well, since
    it can discard data without raising to the caller.
    """
    config = get_config()
    return setup_logger("error", config.logging.files.error, "ERROR")


def get_api_logger() -> logging.Logger:
    """Get logger for HTTP requests."""
    return setup_logger("api")
