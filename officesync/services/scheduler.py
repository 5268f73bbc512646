"""Background jobs: periodic recovery sweep and the daily provider resync.

Both loops are plain asyncio tasks started from the application lifespan.
Each run takes the job lock first, so with several instances only one does
the work.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional
from zoneinfo import ZoneInfo

from officesync.config.sync import SyncConfig

logger = logging.getLogger(__name__)

RECOVERY_JOB = "recovery"
RESYNC_JOB = "daily_resync"


def seconds_until(now: datetime, hour: int, minute: int, tz: ZoneInfo) -> float:
    """Seconds from *now* to the next local hour:minute."""
    local = now.astimezone(tz)
    target = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local:
        target += timedelta(days=1)
    return (target - local).total_seconds()


class JobScheduler:
    def __init__(
        self,
        config: SyncConfig,
        recovery,
        resync,
        lock,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._recovery = recovery
        self._resync = resync
        self._lock = lock
        self._clock = clock
        self._sleep = sleep
        self._tz = ZoneInfo(config.schedule_timezone)
        self._tasks: List[asyncio.Task] = []

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._recovery_loop(), name="officesync-recovery"),
            asyncio.create_task(self._resync_loop(), name="officesync-resync"),
        ]
        logger.info(
            "JobScheduler: recovery every %ss, resync daily at %02d:%02d %s",
            self._config.recovery_interval_seconds, self._config.resync_hour,
            self._config.resync_minute, self._config.schedule_timezone,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def run_recovery_once(self) -> Optional[object]:
        async with self._lock.hold(RECOVERY_JOB) as acquired:
            if not acquired:
                logger.debug("JobScheduler: recovery already running elsewhere")
                return None
            return await self._recovery.run_scheduled_recovery()

    async def run_resync_once(self) -> Optional[object]:
        day = self._clock().astimezone(self._tz).date()
        async with self._lock.hold(RESYNC_JOB) as acquired:
            if not acquired:
                logger.debug("JobScheduler: resync already running elsewhere")
                return None
            return await self._resync.resync_day(day)

    async def _recovery_loop(self) -> None:
        while True:
            await self._sleep(self._config.recovery_interval_seconds)
            try:
                await self.run_recovery_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("JobScheduler: recovery sweep failed")

    async def _resync_loop(self) -> None:
        while True:
            await self._sleep(seconds_until(
                self._clock(), self._config.resync_hour, self._config.resync_minute, self._tz,
            ))
            try:
                await self.run_resync_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("JobScheduler: daily resync failed")
