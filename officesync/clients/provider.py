"""Scheduling-provider REST client (IntakeQ-compatible API).

Used for the daily resync (appointments by date) and for fetching full
intake forms when a FormSubmitted webhook arrives. HTTP 429 and 5xx map to
RateLimitError/TransientInfraError so callers retry them; other 4xx are
ExternalServiceError (ProviderAuthError for 401/403).
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from officesync.config.sync import ProviderConfig
from officesync.core.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    RateLimitError,
    TransientInfraError,
    exception_factory,
)

logger = logging.getLogger(__name__)

ProviderAuthError = exception_factory(
    "ProviderAuthError", code="PROVIDER_AUTH_FAILED", http_status=502, base=ExternalServiceError,
)


class ProviderClient:
    def __init__(self, config: ProviderConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._config = config
        self._transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self._config.api_key:
            raise ConfigurationError("PROVIDER_API_KEY is not configured")
        url = f"{self._config.api_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds, transport=self._transport,
            ) as client:
                resp = await client.get(
                    url,
                    params=params,
                    headers={"X-Auth-Key": self._config.api_key, "Accept": "application/json"},
                )
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise TransientInfraError(f"Provider request to {path} failed", cause=exc) from exc

        if resp.status_code in (401, 403):
            raise ProviderAuthError("Provider rejected the API key", details={"path": path, "status": resp.status_code})
        if resp.status_code == 429:
            raise RateLimitError("Provider rate limit exceeded", details={"path": path})
        if resp.status_code >= 500:
            raise TransientInfraError(
                f"Provider returned HTTP {resp.status_code}", details={"path": path, "status": resp.status_code},
            )
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Provider returned HTTP {resp.status_code}",
                details={"path": path, "status": resp.status_code, "body": resp.text[:500]},
            )
        return resp.json()

    async def get_appointments(self, day_start: date, day_end: date) -> List[Dict[str, Any]]:
        """Appointments whose start falls on [day_start, day_end] (provider-local dates)."""
        data = await self._get(
            "/appointments",
            {"startDate": day_start.isoformat(), "endDate": day_end.isoformat()},
        )
        if not isinstance(data, list):
            raise ExternalServiceError("Unexpected appointments response shape")
        logger.debug("ProviderClient: %d appointments for %s..%s", len(data), day_start, day_end)
        return data

    async def get_intake_form(self, intake_id: str) -> Dict[str, Any]:
        data = await self._get(f"/intakes/{intake_id}")
        if not isinstance(data, dict):
            raise ExternalServiceError("Unexpected intake response shape", details={"intake_id": intake_id})
        return data
