"""Small TTL cache used for configuration snapshots."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """LRU-bounded mapping whose entries expire ``ttl_seconds`` after being put."""

    def __init__(
        self,
        max_size: int = 16,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._store: "OrderedDict[Hashable, tuple[V, float]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, ts = entry
        if self._clock() - ts > self._ttl:
            self._store.pop(key, None)
            logger.debug("TTLCache: %r expired", key)
            return None
        self._store.move_to_end(key)
        return value

    def put(self, key: Hashable, value: V) -> None:
        self._store[key] = (value, self._clock())
        self._store.move_to_end(key)
        while len(self._store) > self._max_size:
            self._store.popitem(last=False)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        if key is None:
            self._store.clear()
        else:
            self._store.pop(key, None)

    @property
    def size(self) -> int:
        return len(self._store)
