from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from dataclasses import dataclass

from .events import AssistantStage, Event, ToolInvocation
from .ids import Clock, MonotonicClock

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    count: int
    last_seen: float


class ExpiringLRUCache:
    """
    Bounded `key -> CacheEntry` map.

    Entries expire `ttl_s` after `last_seen`; when `capacity` is exceeded the
    least recently used entry is evicted. Not thread-safe on its own.
    """

    def __init__(self, *, capacity: int = 500, ttl_s: float = 5.0) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1.")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0.")
        self._capacity = capacity
        self._ttl_s = ttl_s
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str, *, now: float) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now - entry.last_seen > self._ttl_s:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry
        self._entries.move_to_end(key)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def purge_expired(self, *, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now - e.last_seen > self._ttl_s]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()


class EventDeduplicator:
    """
    Suppresses near-duplicate events across the whole session.

    Equivalence is type-specific: tool invocations by tool name within the same
    window-sized time bucket, stages by stage name. Every other event type is
    always accepted.
    """

    def __init__(
        self,
        *,
        window_s: float = 0.1,
        capacity: int = 500,
        ttl_s: float = 5.0,
        clock: Clock | None = None,
    ) -> None:
        if window_s <= 0:
            raise ValueError("window_s must be > 0.")
        self._window_s = window_s
        self._clock = clock or MonotonicClock()
        self._cache = ExpiringLRUCache(capacity=capacity, ttl_s=ttl_s)
        self._lock = threading.Lock()
        self._hits = 0

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def key_for(self, event: Event, *, now: float) -> str | None:
        data = event.data
        if isinstance(data, ToolInvocation):
            bucket = math.floor(now / self._window_s)
            return f"{event.type.value}:{data.tool_call.name}:{bucket}"
        if isinstance(data, AssistantStage):
            return f"{event.type.value}:{data.stage}"
        return None

    def accept(self, event: Event) -> Event | None:
        """Return the event stamped with its acceptance time, or None if it is a duplicate."""

        with self._lock:
            now = self._clock.now()
            key = self.key_for(event, now=now)
            if key is None:
                return event.stamped(now)

            cached = self._cache.get(key, now=now)
            if cached is not None and (now - cached.last_seen) < self._window_s:
                cached.count += 1
                self._hits += 1
                LOGGER.debug("event_deduplicated", extra={"key": key, "count": cached.count})
                return None

            self._cache.purge_expired(now=now)
            self._cache.put(key, CacheEntry(count=1, last_seen=now))
            return event.stamped(now)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
