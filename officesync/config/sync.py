"""
officesync.config.sync – webhook, retry, recovery and integration settings.

Env vars are listed on each from_env(). All values are validated on
construction; an invalid environment fails fast at startup.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from officesync.config.validators import (
    env_bool,
    env_float,
    env_int,
    env_list,
    nonnegative_int,
    positive_float,
    positive_int,
)


@dataclass(frozen=True)
class SyncConfig:
    """Pipeline tuning: signature check, per-entity queue, retries, recovery, jobs."""

    webhook_secret: Optional[str] = None
    signature_required: bool = True
    webhook_rate_limit: str = "120/minute"

    queue_max_per_entity: int = 20
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 4.0
    operation_timeout: float = 30.0

    recovery_interval_seconds: int = 300
    recovery_initial_delay_seconds: int = 30
    recovery_max_attempts: int = 5

    deletion_retry_budget: int = 3
    config_refresh_seconds: int = 300
    recurrence_max_occurrences: int = 52

    resync_hour: int = 5
    resync_minute: int = 30
    schedule_timezone: str = "America/Chicago"
    alert_recipients: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.signature_required and not (self.webhook_secret or "").strip():
            raise ValueError("WEBHOOK_SECRET is required when signature checking is enabled")
        positive_int(self.queue_max_per_entity, "queue_max_per_entity")
        positive_int(self.retry_max_attempts, "retry_max_attempts")
        positive_float(self.retry_base_delay, "retry_base_delay")
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        positive_float(self.operation_timeout, "operation_timeout")
        positive_int(self.recovery_interval_seconds, "recovery_interval_seconds")
        nonnegative_int(self.recovery_initial_delay_seconds, "recovery_initial_delay_seconds")
        positive_int(self.recovery_max_attempts, "recovery_max_attempts")
        positive_int(self.deletion_retry_budget, "deletion_retry_budget")
        nonnegative_int(self.config_refresh_seconds, "config_refresh_seconds")
        positive_int(self.recurrence_max_occurrences, "recurrence_max_occurrences")
        if not 0 <= self.resync_hour <= 23 or not 0 <= self.resync_minute <= 59:
            raise ValueError("resync time must be a valid HH:MM")

    @classmethod
    def from_env(cls) -> SyncConfig:
        """
        Env:
            WEBHOOK_SECRET, WEBHOOK_SIGNATURE_REQUIRED (default true),
            WEBHOOK_RATE_LIMIT, QUEUE_MAX_PER_ENTITY, RETRY_MAX_ATTEMPTS,
            RETRY_BASE_DELAY, RETRY_MAX_DELAY, OPERATION_TIMEOUT,
            RECOVERY_INTERVAL_SECONDS, RECOVERY_INITIAL_DELAY_SECONDS,
            RECOVERY_MAX_ATTEMPTS, DELETION_RETRY_BUDGET, CONFIG_REFRESH_SECONDS,
            RECURRENCE_MAX_OCCURRENCES, RESYNC_HOUR, RESYNC_MINUTE,
            SCHEDULE_TIMEZONE, ALERT_RECIPIENTS (comma-separated)
        """
        return cls(
            webhook_secret=os.environ.get("WEBHOOK_SECRET") or None,
            signature_required=env_bool("WEBHOOK_SIGNATURE_REQUIRED", True),
            webhook_rate_limit=os.environ.get("WEBHOOK_RATE_LIMIT", "120/minute"),
            queue_max_per_entity=env_int("QUEUE_MAX_PER_ENTITY", 20),
            retry_max_attempts=env_int("RETRY_MAX_ATTEMPTS", 3),
            retry_base_delay=env_float("RETRY_BASE_DELAY", 1.0),
            retry_max_delay=env_float("RETRY_MAX_DELAY", 4.0),
            operation_timeout=env_float("OPERATION_TIMEOUT", 30.0),
            recovery_interval_seconds=env_int("RECOVERY_INTERVAL_SECONDS", 300),
            recovery_initial_delay_seconds=env_int("RECOVERY_INITIAL_DELAY_SECONDS", 30),
            recovery_max_attempts=env_int("RECOVERY_MAX_ATTEMPTS", 5),
            deletion_retry_budget=env_int("DELETION_RETRY_BUDGET", 3),
            config_refresh_seconds=env_int("CONFIG_REFRESH_SECONDS", 300),
            recurrence_max_occurrences=env_int("RECURRENCE_MAX_OCCURRENCES", 52),
            resync_hour=env_int("RESYNC_HOUR", 5),
            resync_minute=env_int("RESYNC_MINUTE", 30),
            schedule_timezone=os.environ.get("SCHEDULE_TIMEZONE", "America/Chicago"),
            alert_recipients=tuple(env_list("ALERT_RECIPIENTS")),
        )


@dataclass(frozen=True)
class ProviderConfig:
    """Scheduling-provider REST API (appointment and intake-form lookups)."""

    api_url: str = "https://intakeq.com/api/v1"
    api_key: Optional[str] = None
    timeout_seconds: float = 15.0

    def __post_init__(self) -> None:
        if not self.api_url.startswith(("http://", "https://")):
            raise ValueError("PROVIDER_API_URL must be an http(s) URL")
        positive_float(self.timeout_seconds, "timeout_seconds")

    @classmethod
    def from_env(cls) -> ProviderConfig:
        """Env: PROVIDER_API_URL, PROVIDER_API_KEY, PROVIDER_TIMEOUT_SECONDS."""
        return cls(
            api_url=os.environ.get("PROVIDER_API_URL", "https://intakeq.com/api/v1").rstrip("/"),
            api_key=os.environ.get("PROVIDER_API_KEY") or None,
            timeout_seconds=env_float("PROVIDER_TIMEOUT_SECONDS", 15.0),
        )


@dataclass(frozen=True)
class NotificationConfig:
    """Outbound e-mail API used for operator alerts. Disabled when api_url is unset."""

    api_url: Optional[str] = None
    api_key: Optional[str] = None
    sender: str = "officesync@localhost"
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    @classmethod
    def from_env(cls) -> NotificationConfig:
        """Env: NOTIFY_API_URL, NOTIFY_API_KEY, NOTIFY_SENDER."""
        return cls(
            api_url=os.environ.get("NOTIFY_API_URL") or None,
            api_key=os.environ.get("NOTIFY_API_KEY") or None,
            sender=os.environ.get("NOTIFY_SENDER", "officesync@localhost"),
        )


def load_sync_config() -> SyncConfig:
    return SyncConfig.from_env()


def load_provider_config() -> ProviderConfig:
    return ProviderConfig.from_env()


def load_notification_config() -> NotificationConfig:
    return NotificationConfig.from_env()
