"""Per-entity ordered work queues for provider events.

Each entity key (appointment id, or ``client-<id>`` for forms) owns a bounded
deque and at most one worker task. Events for one key run strictly in arrival
order; different keys drain in parallel. Transient failures are retried with
exponential backoff; what still fails is handed to the recovery ledger.

Recovery replays enter the same per-entity queue through ``replay``, so a
replayed payload runs after every event already queued for its entity. The
supersession check runs when the replay reaches the head of the queue, and a
replay is attempted once: its failure goes back to the recovery ledger.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Union

from officesync.core.exceptions import TransientInfraError, ValidationError, is_retryable
from officesync.orchestrator.events import ProviderEvent, parse_event
from officesync.services.recovery_service import REPLAY_SUPERSEDED, SupersededCheck

logger = logging.getLogger(__name__)

Handler = Callable[[ProviderEvent], Awaitable[Any]]

OPERATION_FOR_KIND: Dict[str, str] = {
    "created": "create",
    "updated": "update",
    "rescheduled": "update",
    "form": "update",
    "cancelled": "delete",
    "deleted": "delete",
}


@dataclass
class QueueStats:
    processed: int = 0
    retried: int = 0
    dropped: int = 0
    escalated: int = 0
    rejected: int = 0
    replayed: int = 0
    superseded: int = 0


@dataclass
class _Replay:
    event: ProviderEvent
    superseded: Optional[SupersededCheck]
    done: asyncio.Future

    @property
    def kind(self) -> str:
        return self.event.kind


_Item = Union[ProviderEvent, _Replay]


class EntityQueue:
    def __init__(
        self,
        handler: Handler,
        recovery,
        *,
        max_per_entity: int = 20,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 4.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._handler = handler
        self._recovery = recovery
        self._max_per_entity = max(1, max_per_entity)
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._queues: Dict[str, Deque[_Item]] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self.stats = QueueStats()

    def enqueue(self, event: ProviderEvent, entity_key: Optional[str] = None) -> None:
        """Append *event* to its entity's queue and make sure a worker is running."""
        self._append(entity_key or event.entity_id, event)

    async def replay(self, payload: Dict[str, Any], superseded: Optional[SupersededCheck] = None) -> Any:
        """Run a recovered payload behind everything already queued for its entity.

        Returns ``REPLAY_SUPERSEDED`` without calling the handler when
        *superseded* reports that a later event for the entity has completed.
        Handler errors propagate to the caller instead of being escalated.
        """
        event = parse_event(payload)
        done = asyncio.get_running_loop().create_future()
        self._append(event.entity_id, _Replay(event, superseded, done))
        return await done

    def _append(self, key: str, item: _Item) -> None:
        queue = self._queues.setdefault(key, deque())
        queue.append(item)
        if len(queue) > self._max_per_entity:
            dropped = queue.popleft()
            self.stats.dropped += 1
            if isinstance(dropped, _Replay) and not dropped.done.done():
                dropped.done.set_exception(TransientInfraError("Replay dropped from a full entity queue"))
            logger.warning(
                "EntityQueue: %s over capacity, dropped oldest %s event",
                key, dropped.kind,
                extra={"extra": {"entity_id": key, "limit": self._max_per_entity}},
            )
        if key not in self._workers:
            self._workers[key] = asyncio.create_task(self._drain(key))

    def pending(self, entity_key: str) -> int:
        return len(self._queues.get(entity_key, ()))

    @property
    def active_entities(self) -> int:
        return len(self._workers)

    async def join(self) -> None:
        """Wait until every queue is empty (used at shutdown and in tests)."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._workers.values()):
            task.cancel()
        await asyncio.gather(*list(self._workers.values()), return_exceptions=True)
        self._workers.clear()
        for queue in self._queues.values():
            for item in queue:
                if isinstance(item, _Replay) and not item.done.done():
                    item.done.set_exception(TransientInfraError("Queue shut down before replay ran"))
        self._queues.clear()

    async def _drain(self, key: str) -> None:
        queue = self._queues[key]
        try:
            while queue:
                item = queue.popleft()
                if isinstance(item, _Replay):
                    await self._run_replay(item)
                else:
                    await self._process(item)
        finally:
            self._workers.pop(key, None)
            if not queue:
                self._queues.pop(key, None)

    async def _run_replay(self, item: _Replay) -> None:
        try:
            if item.superseded is not None and await item.superseded():
                self.stats.superseded += 1
                result: Any = REPLAY_SUPERSEDED
            else:
                result = await self._handler(item.event)
                self.stats.replayed += 1
        except Exception as exc:
            if not item.done.done():
                item.done.set_exception(exc)
        else:
            if not item.done.done():
                item.done.set_result(result)
        finally:
            if not item.done.done():
                item.done.cancel()

    def _delay(self, attempt: int) -> float:
        return min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)

    async def _process(self, event: ProviderEvent) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._handler(event)
                self.stats.processed += 1
                return
            except ValidationError as exc:
                self.stats.rejected += 1
                logger.error("EntityQueue: %s for %s rejected: %s", event.kind, event.entity_id, exc.message)
                return
            except Exception as exc:
                if is_retryable(exc) and attempt < self._max_attempts:
                    self.stats.retried += 1
                    delay = self._delay(attempt)
                    logger.warning(
                        "EntityQueue: %s for %s failed (attempt %d/%d), retrying in %.1fs: %s",
                        event.kind, event.entity_id, attempt, self._max_attempts, delay, exc,
                    )
                    await self._sleep(delay)
                    continue
                await self._escalate(event, exc)
                return

    async def _escalate(self, event: ProviderEvent, exc: BaseException) -> None:
        self.stats.escalated += 1
        logger.error(
            "EntityQueue: %s for %s handed to recovery: %s", event.kind, event.entity_id, exc,
            exc_info=not is_retryable(exc),
        )
        try:
            await self._recovery.record_failed_operation(
                OPERATION_FOR_KIND[event.kind], event.raw, exc, entity_id=event.entity_id,
            )
        except Exception as ledger_exc:
            logger.critical(
                "EntityQueue: could not record failed %s for %s: %s",
                event.kind, event.entity_id, ledger_exc,
                extra={"extra": {"payload": event.raw}},
            )
