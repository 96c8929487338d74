"""
InMemoryLock — asyncio.Lock with a bounded wait.

Serializes processor runs that share one event loop. NOT safe across
processes; use FileLock for that.
"""
from __future__ import annotations

import asyncio
import dataclasses


@dataclasses.dataclass
class InMemoryLock:
    def __post_init__(self) -> None:
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    async def try_acquire(self, timeout: float) -> bool:
        if not self._lock.locked():
            await self._lock.acquire()
            return True
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        if self._lock.locked():
            self._lock.release()
