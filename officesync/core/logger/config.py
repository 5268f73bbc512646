"""
Logger configuration, built in code or from LOG_* env vars.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

_TRUE = ("1", "true", "yes")


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the officesync logger tree.

    The webhook worker and the scheduled jobs run in one process, so a single
    root ("officesync") carries every handler and module loggers inherit it.
    """

    level: str = "INFO"
    # Rotating JSON file is skipped when log_dir is None
    log_dir: Optional[str] = None
    log_file_basename: str = "officesync"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 7
    root_name: str = "officesync"
    console: bool = True
    # Emit JSON lines on the console too (container deployments)
    console_json: bool = False

    def __post_init__(self) -> None:
        if self.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {self.level!r}")
        if self.max_bytes <= 0 or self.backup_count < 0:
            raise ValueError("max_bytes must be > 0 and backup_count >= 0")

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """Build config from LOG_LEVEL, LOG_DIR, LOG_FILE_BASENAME, LOG_MAX_BYTES,
        LOG_BACKUP_COUNT, LOG_CONSOLE and LOG_CONSOLE_JSON."""
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_dir=os.environ.get("LOG_DIR") or None,
            log_file_basename=os.environ.get("LOG_FILE_BASENAME", "officesync"),
            max_bytes=int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024))),
            backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "7")),
            console=os.environ.get("LOG_CONSOLE", "true").lower() in _TRUE,
            console_json=os.environ.get("LOG_CONSOLE_JSON", "false").lower() in _TRUE,
        )

    def with_overrides(self, **changes: object) -> "LoggerConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
