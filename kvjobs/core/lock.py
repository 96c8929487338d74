"""
hold — scope an ExecutionLockPort acquisition.

    async with hold(lock, timeout=10) as acquired:
        if not acquired:
            return
        ...

The lock is released on every exit path, exceptions included, and only if
this scope acquired it.
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from kvjobs.ports.lock import ExecutionLockPort


@asynccontextmanager
async def hold(lock: ExecutionLockPort, timeout: float) -> AsyncIterator[bool]:
    acquired = await lock.try_acquire(timeout)
    try:
        yield acquired
    finally:
        if acquired:
            await lock.release()
