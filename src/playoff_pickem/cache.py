"""Provider response caching and in-flight request sharing."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Protocol, Tuple, TypeVar

LOGGER = logging.getLogger(__name__)

V = TypeVar("V")


class Cache(Protocol):
    def get(self, key: Hashable) -> Optional[Any]:
        ...

    def set(self, key: Hashable, value: Any, ttl: float) -> None:
        ...


class TTLCache:
    """Process-wide in-memory cache whose entries expire after a per-key TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._items[key]
                LOGGER.debug("Cache entry %s expired", key)
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._items[key] = (self._clock() + ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SingleFlight(Generic[V]):
    """Share one outstanding call per key among all concurrent awaiters.

    The first caller for a key starts the work as its own task; later callers
    await the same task until it settles, after which the key is forgotten.
    Cancelling one awaiter (for example on a timeout) leaves the others
    waiting on the shared task.
    """

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Future[V]] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[V]]) -> V:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            LOGGER.debug("Joining in-flight request for %s", key)
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Future[V]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Retrieve so a failure nobody awaited does not warn at GC.
            task.exception()
