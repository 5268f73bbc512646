"""DeletionVerifier: confirm a deletion really removed the record.

Remediation runs as an ordered list of strategies sharing one result type;
each strategy gets its own retry budget and every attempt is followed by a
re-fetch. If nothing converges, the record is marked cancelled: it stays
readable but no longer holds an office.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from officesync.core.exceptions import ReconciliationFailure
from officesync.orchestrator.types import AppointmentRecord, AppointmentStatus
from officesync.services.record_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyResult:
    strategy: str
    succeeded: bool
    attempts: int
    error: str = ""


@dataclass(frozen=True)
class DeletionOutcome:
    appointment_id: str
    confirmed: bool
    degraded: bool = False
    strategy: Optional[str] = None
    results: Tuple[StrategyResult, ...] = ()

    @property
    def safe(self) -> bool:
        """Either gone, or cancelled so it no longer blocks an office."""
        return self.confirmed or self.degraded


class DeletionStrategy:
    name = "base"

    async def apply(self, store: RecordStore, record: AppointmentRecord) -> None:
        raise NotImplementedError


class DirectDelete(DeletionStrategy):
    name = "direct_delete"

    async def apply(self, store: RecordStore, record: AppointmentRecord) -> None:
        await store.delete_appointment(record.appointment_id)


class ClearValues(DeletionStrategy):
    name = "clear_values"

    async def apply(self, store: RecordStore, record: AppointmentRecord) -> None:
        await store.clear_appointment(record.appointment_id)


class StructuralDelete(DeletionStrategy):
    name = "structural_delete"

    async def apply(self, store: RecordStore, record: AppointmentRecord) -> None:
        await store.purge_appointment(record.appointment_id)


class BroadRangeClear(DeletionStrategy):
    """Purge by id across the record's whole surrounding day window."""

    name = "broad_range_clear"

    def __init__(self, margin: timedelta = timedelta(days=1)) -> None:
        self.margin = margin

    async def apply(self, store: RecordStore, record: AppointmentRecord) -> None:
        await store.purge_appointment_window(
            record.appointment_id, record.start - self.margin, record.end + self.margin,
        )


DEFAULT_STRATEGIES: Tuple[DeletionStrategy, ...] = (
    DirectDelete(),
    ClearValues(),
    StructuralDelete(),
    BroadRangeClear(),
)


class DeletionVerifier:
    def __init__(
        self,
        store: RecordStore,
        *,
        strategies: Sequence[DeletionStrategy] = DEFAULT_STRATEGIES,
        retry_budget: int = 3,
        retry_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._strategies = list(strategies)
        self._budget = max(1, retry_budget)
        self._delay = retry_delay
        self._sleep = sleep

    async def verify_deletion(self, appointment_id: str) -> bool:
        record = await self._store.get_appointment(appointment_id)
        return record is None or record.status == AppointmentStatus.DELETED

    async def ensure_deleted(self, appointment_id: str) -> DeletionOutcome:
        record = await self._store.get_appointment(appointment_id)
        if record is None or record.status == AppointmentStatus.DELETED:
            return DeletionOutcome(appointment_id, confirmed=True)

        results: List[StrategyResult] = []
        for strategy in self._strategies:
            result = await self._attempt(strategy, record)
            results.append(result)
            if result.succeeded:
                if strategy is not self._strategies[0]:
                    logger.warning(
                        "DeletionVerifier: %s needed fallback strategy %s", appointment_id, strategy.name,
                    )
                return DeletionOutcome(
                    appointment_id, confirmed=True, strategy=strategy.name, results=tuple(results),
                )

        return await self._degrade(record, results)

    async def _attempt(self, strategy: DeletionStrategy, record: AppointmentRecord) -> StrategyResult:
        last_error = ""
        for attempt in range(1, self._budget + 1):
            try:
                await strategy.apply(self._store, record)
                if await self.verify_deletion(record.appointment_id):
                    return StrategyResult(strategy.name, True, attempt)
                last_error = "record still present after apply"
            except Exception as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "DeletionVerifier: %s attempt %d/%d for %s failed: %s",
                    strategy.name, attempt, self._budget, record.appointment_id, last_error,
                )
            if attempt < self._budget and self._delay > 0:
                await self._sleep(self._delay * (2 ** (attempt - 1)))
        return StrategyResult(strategy.name, False, self._budget, last_error)

    async def _degrade(self, record: AppointmentRecord, results: List[StrategyResult]) -> DeletionOutcome:
        note = "Deletion could not be confirmed; marked cancelled"
        cancelled = replace(
            record,
            status=AppointmentStatus.CANCELLED,
            assigned_office=None,
            needs_assignment=False,
            notes=f"{record.notes}\n{note}".strip(),
            last_modified=datetime.now(timezone.utc),
        )
        try:
            await self._store.upsert_appointment(cancelled)
        except Exception as exc:
            raise ReconciliationFailure(
                "Deletion and cancel fallback both failed",
                details={"appointment_id": record.appointment_id, "strategies": [r.strategy for r in results]},
                cause=exc,
            ) from exc
        logger.error(
            "DeletionVerifier: %s not deleted after %d strategies, marked cancelled",
            record.appointment_id, len(results),
        )
        return DeletionOutcome(
            record.appointment_id, confirmed=False, degraded=True, results=tuple(results),
        )
