"""
WakeupSchedulerPort — one-shot, best-effort future invocations of a handler.

Wake-ups are identified by handler name only. Firing time is coarse
(minute-level precision is acceptable) and nothing may depend on the relative
order of two armed wake-ups, which is why arm_wakeup always sweeps existing
ones for the same handler first.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class WakeupSchedulerPort(Protocol):
    """
    Implementing adapters (built-in):
      - InMemoryScheduler   — records wake-ups, fired manually by tests
      - APSchedulerWakeups  — APScheduler AsyncIOScheduler + DateTrigger
    """

    async def arm_wakeup(self, handler_name: str, delay: timedelta) -> None:
        """Cancel every pending wake-up for handler_name, then schedule one."""
        ...

    async def cancel_all(self, handler_name: str) -> int:
        """Remove all pending wake-ups for handler_name. Returns how many."""
        ...

    async def pending(self, handler_name: str) -> int:
        """Number of wake-ups currently armed for handler_name."""
        ...
