"""Logging setup for Campus RBAC.

Every module logs through `logging.getLogger(__name__)`, so all records end up
under the "campus" logger configured here. Console output is always on;
a size-rotated file under `log_dir` is optional.
"""

import logging
import logging.handlers
import os
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from campus.core.config import Settings

LOGGER_NAME = "campus"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"  # ISO 8601


def _parse_level(level: str) -> int:
    name = level.upper()
    if name not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, name)


def _build_handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str = LOGGER_NAME,
    log_dir: str = "/var/log/campus",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Configure a named logger.

    Calling it again only updates the level; handlers are attached once.

    Raises:
        ValueError: If `level` is not a standard level name
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        log_format or DEFAULT_LOG_FORMAT,
        datefmt=date_format or DEFAULT_DATE_FORMAT,
    )
    for handler in _build_handlers(
        name, log_dir, file_logging, console_logging, max_bytes, backup_count
    ):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(settings: "Settings") -> logging.Logger:
    """Configure the "campus" logger from application settings."""
    logger = setup_logger(
        LOGGER_NAME,
        log_dir=settings.log_dir,
        level=settings.log_level,
        log_format=settings.log_format,
        file_logging=settings.log_to_file,
    )
    # SQL echo goes through sqlalchemy's own logger
    if settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    return logger
