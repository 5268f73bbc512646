"""Operator notifications: HTTP e-mail API client and a no-op stand-in."""
from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from officesync.config.sync import NotificationConfig

logger = logging.getLogger(__name__)


class Notifier:
    """Send one message to a list of recipients. Returns True on delivery."""

    @property
    def provider(self) -> str:
        return "base"

    async def send(self, recipients: List[str], subject: str, html_body: str, text_body: str) -> bool:
        raise NotImplementedError


class NoOpNotifier(Notifier):
    """Used when no notification API is configured. Logs and reports not-sent."""

    @property
    def provider(self) -> str:
        return "noop"

    async def send(self, recipients: List[str], subject: str, html_body: str, text_body: str) -> bool:
        logger.warning("NoOpNotifier: alert not sent (no NOTIFY_API_URL): %s", subject)
        return False


class HttpNotifier(Notifier):
    """POSTs a JSON message to a transactional e-mail API (SendGrid-style)."""

    def __init__(self, config: NotificationConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._transport = transport

    @property
    def provider(self) -> str:
        return "http"

    async def send(self, recipients: List[str], subject: str, html_body: str, text_body: str) -> bool:
        if not recipients:
            return False
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        body = {
            "from": self._config.sender,
            "to": recipients,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds, transport=self._transport) as client:
                resp = await client.post(self._config.api_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("HttpNotifier: send failed (%s): %s", subject, exc)
            return False
        if resp.status_code >= 400:
            logger.error("HttpNotifier: API returned %d for %r: %s", resp.status_code, subject, resp.text[:200])
            return False
        logger.info("HttpNotifier: sent %r to %d recipient(s)", subject, len(recipients))
        return True


def build_notifier(config: NotificationConfig) -> Notifier:
    return HttpNotifier(config) if config.enabled else NoOpNotifier()
