"""
InMemoryCache — TTL cache with a per-entry size ceiling.

Mirrors the behaviour of a hosted script cache: every entry expires after
its TTL, entries larger than ``max_entry_bytes`` are rejected, and any entry
can disappear early (``evict`` lets tests simulate that).

The clock is injectable so tests can move time forward without sleeping.
"""
from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable

from kvjobs.domain.errors import ValueTooLargeError


@dataclasses.dataclass
class InMemoryCache:
    """
    Parameters
    ----------
    max_entry_bytes : largest accepted value (UTF-8 encoded length)
    clock           : monotonic seconds source
    """

    max_entry_bytes: int = 100 * 1024
    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._live(key)

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        async with self._lock:
            found: dict[str, str] = {}
            for key in keys:
                value = self._live(key)
                if value is not None:
                    found[key] = value
            return found

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value. Raises ValueTooLargeError above max_entry_bytes."""
        size = len(value.encode("utf-8"))
        if size > self.max_entry_bytes:
            raise ValueTooLargeError(key, size, self.max_entry_bytes)
        async with self._lock:
            self._entries[key] = (value, self.clock() + ttl_seconds)

    async def delete_many(self, keys: list[str]) -> None:
        async with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def evict(self, key: str) -> None:
        """Drop one entry as if the cache had evicted it."""
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self._live(key) is not None

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value
