"""Logging setup shared by the ``run.py`` commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .config import AppConfig

LOG_FILE_NAME = "kosakata.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s"

# Multipart parsing logs every form part at DEBUG.
QUIET_LOGGERS = ("multipart", "python_multipart")


class RequestIdFilter(logging.Filter):
    """Give records logged outside a request a placeholder ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = "-"
        return True


def get_log_file_path(config: AppConfig) -> Path:
    return config.storage_root / LOG_FILE_NAME


def build_handlers(config: AppConfig) -> List[logging.Handler]:
    """Return the file and stderr handlers, both tagged with the request id."""

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [
        logging.FileHandler(get_log_file_path(config), encoding="utf-8"),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
    return handlers


def configure_logging(config: AppConfig) -> logging.Logger:
    """Log at INFO in production and DEBUG elsewhere, to the storage log file and stderr."""

    logger = logging.getLogger()
    logger.setLevel(logging.INFO if config.is_production else logging.DEBUG)
    for handler in build_handlers(config):
        logger.addHandler(handler)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger


__all__ = ["LOG_FILE_NAME", "LOG_FORMAT", "RequestIdFilter", "configure_logging", "get_log_file_path"]
