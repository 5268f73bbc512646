"""
officesync.config.postgres – PostgreSQL connection config (dataclass + validators).

Env vars: DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT,
DB_POOL_RECYCLE, DB_ECHO, DB_APPLICATION_NAME.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from officesync.config.validators import env_bool, env_int, positive_int, nonnegative_int


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("DATABASE_URL is required and must be non-empty")
    if not url.startswith(("postgresql://", "postgres://", "postgresql+asyncpg://")):
        raise ValueError(
            "DATABASE_URL must start with postgresql://, postgres:// or postgresql+asyncpg://"
        )
    return url


@dataclass(frozen=True)
class PostgresConfig:
    """
    Record-store connection and pool configuration.

    The record store holds appointments, the webhook ledger, the recovery
    ledger, audit entries and the scheduling configuration tables.
    """

    url: str
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False
    application_name: str = "officesync"

    def __post_init__(self) -> None:
        _validate_url(self.url)
        positive_int(self.pool_size, "pool_size")
        nonnegative_int(self.max_overflow, "max_overflow")
        positive_int(self.pool_timeout, "pool_timeout")
        positive_int(self.pool_recycle, "pool_recycle")
        if not self.application_name.strip():
            raise ValueError("application_name must be a non-empty string")

    @property
    def async_url(self) -> str:
        """DSN rewritten for the asyncpg driver."""
        url = self.url
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        if url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://"):]
        return url

    @classmethod
    def from_env(cls, **overrides: object) -> PostgresConfig:
        """Build config from environment; keyword overrides take precedence."""
        url = overrides.get("url") or os.environ.get("DATABASE_URL", "postgresql://localhost/officesync")
        return cls(
            url=_validate_url(str(url)),
            pool_size=int(overrides.get("pool_size") or env_int("DB_POOL_SIZE", 5)),
            max_overflow=int(overrides.get("max_overflow") or env_int("DB_MAX_OVERFLOW", 10)),
            pool_timeout=int(overrides.get("pool_timeout") or env_int("DB_POOL_TIMEOUT", 30)),
            pool_recycle=int(overrides.get("pool_recycle") or env_int("DB_POOL_RECYCLE", 1800)),
            echo=bool(overrides.get("echo")) if "echo" in overrides else env_bool("DB_ECHO", False),
            application_name=str(
                overrides.get("application_name") or os.environ.get("DB_APPLICATION_NAME", "officesync")
            ),
        )


def load_postgres_config(**overrides: object) -> PostgresConfig:
    """Load and validate PostgreSQL config. Raises ValueError on invalid env/values."""
    return PostgresConfig.from_env(**overrides)
