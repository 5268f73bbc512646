"""
Project logger: console plus rotating JSON file.

Usage:
    from officesync.core.logger import configure, LoggerConfig

    configure()  # LoggerConfig.from_env(): LOG_LEVEL, LOG_DIR, ...

    logger = logging.getLogger(__name__)
    logger.warning("queue overflow", extra={"extra": {"entity": "appt-42"}})
"""
from officesync.core.logger.config import LoggerConfig
from officesync.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from officesync.core.logger.setup import (
    build_console_handler,
    build_rotating_file_handler,
    configure,
)

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "configure",
    "build_rotating_file_handler",
    "build_console_handler",
]
