"""Logging for makerchecker.

Every engine module logs through ``get_logger(<component>)``, which places it
below the ``makerchecker`` logger. Applications embedding the engine usually
configure their own logging; the CLI (and anyone who wants the packaged
setup) calls ``configure_logging`` once at startup.
"""

import logging
import logging.handlers
import os
from typing import Optional, Union

ROOT_LOGGER_NAME = "makerchecker"

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"  # ISO 8601

LOG_FILE_NAME = "makerchecker.log"

# Marks handlers installed here so repeated setup replaces rather than stacks them
_HANDLER_FLAG = "_makerchecker_handler"


def _parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return value


def _own(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    setattr(handler, _HANDLER_FLAG, True)
    return handler


def setup_logger(
    level: Union[str, int] = "INFO",
    log_dir: Optional[str] = None,
    *,
    name: str = ROOT_LOGGER_NAME,
    console: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach the packaged handlers to the ``makerchecker`` logger.

    Calling this again replaces the handlers from the previous call, so a
    long-lived process can reconfigure without duplicating output.

    Args:
        level: Logging level name or number
        log_dir: Directory for a rotating ``makerchecker.log``; no file
            logging when omitted
        name: Logger to configure
        console: Also log to stderr
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.addHandler(_own(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )))

    if console:
        logger.addHandler(_own(logging.StreamHandler()))

    return logger


def configure_logging(settings, level: Optional[str] = None) -> logging.Logger:
    """Configure logging from process settings.

    Args:
        settings: ``makerchecker.core.config.Settings``
        level: Overrides ``settings.log_level``
    """
    return setup_logger(
        level or settings.log_level,
        settings.log_dir if settings.file_logging else None,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the package namespace.

    Args:
        name: Component name, e.g. ``request_builder``

    Returns:
        Logger instance named ``makerchecker.<name>``
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
