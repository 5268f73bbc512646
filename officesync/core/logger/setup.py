"""
Logger setup: console and rotating JSON file handlers attached to the
officesync root logger.
"""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from officesync.core.logger.config import LoggerConfig
from officesync.core.logger.formatters import JsonFormatter, PlainConsoleFormatter

def configure(config: Optional[LoggerConfig] = None) -> None:
    """
    Configure the officesync root logger. Safe to call repeatedly; handlers
    are replaced, not stacked. Uses LoggerConfig.from_env() when config is None.
    """
    if config is None:
        config = LoggerConfig.from_env()

    level = getattr(logging, config.level.upper(), logging.INFO)
    root = logging.getLogger(config.root_name)
    root.setLevel(level)
    root.handlers.clear()

    if config.console:
        formatter = JsonFormatter() if config.console_json else PlainConsoleFormatter()
        root.addHandler(build_console_handler(level=config.level, formatter=formatter))

    if config.log_dir and config.log_dir.strip():
        try:
            root.addHandler(
                build_rotating_file_handler(
                    config.log_dir,
                    basename=config.log_file_basename,
                    max_bytes=config.max_bytes,
                    backup_count=config.backup_count,
                    level=config.level,
                )
            )
        except OSError:
            root.warning("Could not create log dir %s, skipping file handler", config.log_dir)

    root.propagate = False


def build_rotating_file_handler(
    log_dir: str,
    basename: str = "officesync",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 7,
    level: str = "INFO",
) -> RotatingFileHandler:
    """Rotating file handler writing JSON lines to ``<log_dir>/<basename>.log``."""
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, f"{basename}.log"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler.setFormatter(JsonFormatter())
    return handler


def build_console_handler(
    level: str = "INFO",
    formatter: Optional[logging.Formatter] = None,
) -> logging.StreamHandler:
    handler = logging.StreamHandler()
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler.setFormatter(formatter or PlainConsoleFormatter())
    return handler
