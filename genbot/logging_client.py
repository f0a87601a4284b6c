"""
Logging configuration: console, rotating file and optional central log service.
"""
import logging
import logging.handlers
import os
from collections import deque
from typing import Optional

from .core.config import BotSettings

CONSOLE_FORMAT = '%(asctime)s - [%(service)s] - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = ("discord", "aiohttp", "asyncio")


def setup_logger(service_name: str, settings: Optional[BotSettings] = None) -> logging.Logger:
    """
    Setup the service logger.

    Every module logs through ``logging.getLogger(__name__)``, so configuring
    the ``service_name`` logger covers the whole package.

    Args:
        service_name: Name of the service and of its top-level package
        settings: Logging settings (read from the environment when omitted)

    Returns:
        Configured logger
    """
    settings = settings or BotSettings()

    logger = logging.getLogger(service_name)
    logger.setLevel(settings.LOG_LEVEL.upper())

    # Remove existing handlers
    logger.handlers = []

    # Add service name to all log records
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.service = service_name
        return record

    logging.setLogRecordFactory(record_factory)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    # File tailed by the logs command
    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    if settings.LOGGING_HOST:
        socket_handler = logging.handlers.SocketHandler(settings.LOGGING_HOST, settings.LOGGING_PORT)
        logger.addHandler(socket_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def read_log_tail(path: str, max_rows: int) -> str:
    """Return the last ``max_rows`` lines of a log file, or "" if it does not exist."""
    if max_rows <= 0 or not path:
        return ""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            rows = deque(f, maxlen=max_rows)
    except FileNotFoundError:
        return ""
    return "".join(rows)
