"""
Logging Configuration

All propmatch modules log under the "propmatch" logger tree. The CLI and the
WSGI entry point call configure_from_config() once at startup; library code
only ever asks for loggers.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

ROOT_LOGGER = "propmatch"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty dependencies that log every connection / request at INFO
NOISY_LOGGERS = ("urllib3", "werkzeug")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """
    Configure the propmatch logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path of a rotating log file
        max_size_mb: Size at which the log file is rotated
        backup_count: Rotated files to keep
        quiet: Third-party loggers raised to WARNING

    Returns:
        The configured "propmatch" logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Reconfiguring replaces handlers instead of stacking them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        rotating.setFormatter(formatter)
        logger.addHandler(rotating)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def configure_from_config(config) -> logging.Logger:
    """setup_logging() with LOG_LEVEL / LOG_FILE taken from a Config."""
    return setup_logging(config.LOG_LEVEL, config.LOG_FILE)


def get_logger(name: str) -> logging.Logger:
    """Child logger, e.g. get_logger('cli') -> 'propmatch.cli'."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
