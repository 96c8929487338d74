"""
ExecutionLockPort — a single named mutual-exclusion token.

Only the processor takes the lock; producers never do. A failed acquisition
is not an error, it means another activation is draining the queue.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ExecutionLockPort(Protocol):
    """
    Implementing adapters (built-in):
      - InMemoryLock — asyncio.Lock with a bounded wait
      - FileLock     — fcntl.flock, single machine, across processes
    """

    async def try_acquire(self, timeout: float) -> bool:
        """Wait at most timeout seconds. True if the caller now holds the lock."""
        ...

    async def release(self) -> None:
        """Release a held lock. Releasing an unheld lock is a no-op."""
        ...
