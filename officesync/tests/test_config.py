"""Unit tests for env-driven config dataclasses and the configuration cache."""
from __future__ import annotations

import asyncio
import os
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from officesync.config.postgres import PostgresConfig
from officesync.config.sync import NotificationConfig, ProviderConfig, SyncConfig
from officesync.core.exceptions import ConfigurationError
from officesync.orchestrator.cache import TTLCache
from officesync.orchestrator.snapshot import ConfigSnapshot
from officesync.services.config_service import ConfigurationService, office_from_row


class TestSyncConfig(unittest.TestCase):
    def test_secret_required_when_signing(self) -> None:
        with self.assertRaises(ValueError):
            SyncConfig()
        SyncConfig(signature_required=False)

    def test_rejects_bad_values(self) -> None:
        with self.assertRaises(ValueError):
            SyncConfig(webhook_secret="s", retry_max_attempts=0)
        with self.assertRaises(ValueError):
            SyncConfig(webhook_secret="s", retry_base_delay=5.0, retry_max_delay=1.0)
        with self.assertRaises(ValueError):
            SyncConfig(webhook_secret="s", resync_hour=24)

    def test_from_env(self) -> None:
        env = {
            "WEBHOOK_SECRET": "abc",
            "QUEUE_MAX_PER_ENTITY": "5",
            "RETRY_BASE_DELAY": "0.5",
            "ALERT_RECIPIENTS": "ops@example.com, lead@example.com",
            "SCHEDULE_TIMEZONE": "America/Denver",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = SyncConfig.from_env()
        self.assertEqual(cfg.webhook_secret, "abc")
        self.assertTrue(cfg.signature_required)
        self.assertEqual(cfg.queue_max_per_entity, 5)
        self.assertEqual(cfg.retry_base_delay, 0.5)
        self.assertEqual(cfg.alert_recipients, ("ops@example.com", "lead@example.com"))
        self.assertEqual(cfg.schedule_timezone, "America/Denver")

    def test_from_env_rejects_non_integer(self) -> None:
        with patch.dict(os.environ, {"WEBHOOK_SECRET": "abc", "RETRY_MAX_ATTEMPTS": "three"}, clear=True):
            with self.assertRaises(ValueError):
                SyncConfig.from_env()

    def test_signature_can_be_disabled(self) -> None:
        with patch.dict(os.environ, {"WEBHOOK_SIGNATURE_REQUIRED": "false"}, clear=True):
            cfg = SyncConfig.from_env()
        self.assertFalse(cfg.signature_required)
        self.assertIsNone(cfg.webhook_secret)


class TestOtherConfigs(unittest.TestCase):
    def test_postgres_async_url(self) -> None:
        cfg = PostgresConfig(url="postgres://u:p@db:5432/officesync")
        self.assertEqual(cfg.async_url, "postgresql+asyncpg://u:p@db:5432/officesync")
        with self.assertRaises(ValueError):
            PostgresConfig(url="mysql://db/x")

    def test_provider_url_validated(self) -> None:
        with self.assertRaises(ValueError):
            ProviderConfig(api_url="ftp://provider")
        with patch.dict(os.environ, {"PROVIDER_API_URL": "https://p.example.com/api/"}, clear=True):
            self.assertEqual(ProviderConfig.from_env().api_url, "https://p.example.com/api")

    def test_notifications_disabled_without_url(self) -> None:
        self.assertFalse(NotificationConfig().enabled)
        self.assertTrue(NotificationConfig(api_url="https://mail.example.com/send").enabled)


class TestTTLCache(unittest.TestCase):
    def test_expiry_and_eviction(self) -> None:
        now = [0.0]
        cache = TTLCache(max_size=2, ttl_seconds=10, clock=lambda: now[0])
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        self.assertIsNone(cache.get("a"))
        self.assertEqual(cache.get("b"), 2)
        now[0] = 11.0
        self.assertIsNone(cache.get("b"))
        cache.put("d", 4)
        cache.invalidate()
        self.assertEqual(cache.size, 0)


class _CountingConfigurationService(ConfigurationService):
    def __init__(self) -> None:
        super().__init__(None, refresh_seconds=300)
        self.loads = 0

    async def _load(self) -> ConfigSnapshot:
        self.loads += 1
        return ConfigSnapshot()


class TestConfigurationService(unittest.TestCase):
    def test_snapshot_is_cached_until_invalidated(self) -> None:
        service = _CountingConfigurationService()

        async def scenario():
            await asyncio.gather(service.snapshot(), service.snapshot())
            await service.snapshot()
            service.invalidate()
            await service.snapshot()

        asyncio.run(scenario())
        self.assertEqual(service.loads, 2)

    def test_office_row_normalized(self) -> None:
        row = SimpleNamespace(
            office_id="b4", name="Unit 4", in_service=True, is_accessible=True, is_virtual=False,
            floor="ground", size="medium", age_groups=["Adults"], features=["Quiet"],
            primary_clinician=None, alternate_clinicians=None, display_order=3,
        )
        office = office_from_row(row)
        self.assertEqual(office.office_id, "B-4")
        self.assertEqual(office.age_groups, ("adults",))
        self.assertEqual(office.features, ("quiet",))

    def test_office_row_with_bad_code(self) -> None:
        row = SimpleNamespace(office_id="Z-99")
        with self.assertRaises(ConfigurationError):
            office_from_row(row)
