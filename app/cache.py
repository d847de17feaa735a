import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """In-memory TTL cache with LRU eviction and take-once reads."""

    def __init__(self, default_ttl: int = 300, max_size: int = 1000, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is not None and self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def pop(self, key: str) -> Optional[Any]:
        """Remove and return a live entry, so it can be taken exactly once."""
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            del self._entries[key]
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + (ttl or self.default_ttl))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in stale:
                del self._entries[key]
            return len(stale)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def size(self) -> int:
        return len(self._entries)
