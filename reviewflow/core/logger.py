"""Logging setup for the review engine.

Every module logs through ``logging.getLogger(__name__)``; ``configure_logging``
attaches handlers once to the ``reviewflow`` package logger. Each line carries
the id of the HTTP request it was written under (``-`` outside a request),
taken from ``request_id_var``, which the request-context middleware sets.
"""

import logging
import logging.handlers
import os
from contextvars import ContextVar
from typing import Optional

from reviewflow.core.config import Settings, get_settings

PACKAGE_LOGGER = "reviewflow"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(request_id)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamps each record with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(
    settings: Optional[Settings] = None,
    *,
    console: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the package logger from settings.

    Uses ``log_level``, plus ``log_dir`` when ``file_logging`` is on. Calling
    it again only updates the level.

    Raises:
        ValueError: On an unknown ``log_level``
    """
    settings = settings or get_settings()
    logger = logging.getLogger(PACKAGE_LOGGER)

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {settings.log_level}")
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = []
    if settings.file_logging:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, f"{PACKAGE_LOGGER}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        # Records propagate up from module loggers, so filter at the handler
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)
    return logger
