"""Rate limiting and bounded time-keyed bookkeeping.

RateLimiter spaces outgoing HTTP requests. ExpiringSet and CooldownTracker
replace the unbounded "seen" set and per-guild cooldown dicts: entries
expire after a TTL and the total size is capped (oldest evicted first).
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable


class RateLimiter:
    """Minimum-interval limiter for async HTTP clients."""

    def __init__(self, max_rps: float) -> None:
        self._min_interval = 1.0 / max_rps
        self._last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            wait = self._min_interval - (now - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()


class ExpiringSet:
    """Set of keys that forget themselves after ``ttl_sec``; at most ``max_size`` kept."""

    def __init__(
        self,
        ttl_sec: float,
        max_size: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_sec
        self._max_size = max_size
        self._clock = clock
        self._items: OrderedDict[Hashable, float] = OrderedDict()  # key -> added_at

    def _evict(self) -> None:
        cutoff = self._clock() - self._ttl
        while self._items:
            key, added_at = next(iter(self._items.items()))
            if added_at > cutoff:
                break
            del self._items[key]
        while len(self._items) > self._max_size:
            self._items.popitem(last=False)

    def add(self, key: Hashable) -> None:
        self._items.pop(key, None)
        self._items[key] = self._clock()
        self._evict()

    def __contains__(self, key: object) -> bool:
        self._evict()
        return key in self._items

    def __len__(self) -> int:
        self._evict()
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()


class CooldownTracker:
    """Last-fired timestamps per key; a key is ready once ``cooldown_sec`` has passed."""

    def __init__(
        self,
        cooldown_sec: float,
        max_size: int = 5_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown = cooldown_sec
        self._max_size = max_size
        self._clock = clock
        self._last: OrderedDict[Hashable, float] = OrderedDict()

    def ready(self, key: Hashable) -> bool:
        last = self._last.get(key)
        if last is None:
            return True
        return self._clock() - last >= self._cooldown

    def mark(self, key: Hashable) -> None:
        now = self._clock()
        self._last.pop(key, None)
        self._last[key] = now
        if len(self._last) <= self._max_size:
            return
        cutoff = now - self._cooldown
        while self._last:
            oldest = next(iter(self._last.values()))
            if oldest > cutoff:
                break
            self._last.popitem(last=False)
        # still over capacity with every key active: drop the oldest
        while len(self._last) > self._max_size:
            self._last.popitem(last=False)

    def __len__(self) -> int:
        return len(self._last)
