"""
InMemoryScheduler — records wake-ups without running anything on its own.

Tests (and single-shot scripts) arm wake-ups through the port and later ask
which ones are due, or pop them with fire_due() and invoke the processor
themselves. The clock is injectable so due-ness can be driven by the test.
"""
from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable
from datetime import timedelta


@dataclasses.dataclass(frozen=True)
class Wakeup:
    handler_name: str
    due_at: float


@dataclasses.dataclass
class InMemoryScheduler:
    """
    Parameters
    ----------
    clock : seconds source used to compute due times
    """

    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        self._wakeups: list[Wakeup] = []
        self._lock: asyncio.Lock = asyncio.Lock()
        self.armed_total: int = 0

    async def arm_wakeup(self, handler_name: str, delay: timedelta) -> None:
        async with self._lock:
            self._remove(handler_name)
            self._wakeups.append(
                Wakeup(handler_name, self.clock() + delay.total_seconds())
            )
            self.armed_total += 1

    async def cancel_all(self, handler_name: str) -> int:
        async with self._lock:
            return self._remove(handler_name)

    async def pending(self, handler_name: str) -> int:
        async with self._lock:
            return sum(1 for w in self._wakeups if w.handler_name == handler_name)

    def wakeups(self) -> tuple[Wakeup, ...]:
        """Snapshot of every armed wake-up."""
        return tuple(self._wakeups)

    async def fire_due(self, handler_name: str) -> bool:
        """
        Consume due wake-ups for handler_name.

        Returns True when at least one was due, i.e. when the caller should
        now run the handler.
        """
        async with self._lock:
            now = self.clock()
            due = [
                w for w in self._wakeups
                if w.handler_name == handler_name and w.due_at <= now
            ]
            for w in due:
                self._wakeups.remove(w)
            return bool(due)

    def _remove(self, handler_name: str) -> int:
        before = len(self._wakeups)
        self._wakeups = [w for w in self._wakeups if w.handler_name != handler_name]
        return before - len(self._wakeups)
