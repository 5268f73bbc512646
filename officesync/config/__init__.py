"""
officesync config: frozen dataclasses loaded from env.

load_postgres_config(), load_sync_config(), load_provider_config(),
load_notification_config().
"""
from officesync.config.postgres import PostgresConfig, load_postgres_config
from officesync.config.sync import (
    NotificationConfig,
    ProviderConfig,
    SyncConfig,
    load_notification_config,
    load_provider_config,
    load_sync_config,
)

__all__ = [
    "PostgresConfig",
    "load_postgres_config",
    "SyncConfig",
    "load_sync_config",
    "ProviderConfig",
    "load_provider_config",
    "NotificationConfig",
    "load_notification_config",
]
