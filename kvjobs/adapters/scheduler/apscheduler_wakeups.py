"""
APSchedulerWakeups — wake-ups as one-shot APScheduler jobs.

Each armed wake-up is an ``AsyncIOScheduler`` job with a ``DateTrigger``;
the APScheduler job *name* carries the handler name so that every wake-up of
one handler can be found and swept. Callbacks are registered by handler name
before anything is armed.

Usage
-----
    wakeups = APSchedulerWakeups()
    wakeups.register(PROCESS_QUEUE_HANDLER, processor.run)
    wakeups.start()
    ...
    wakeups.shutdown()
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from kvjobs.domain.errors import KVJobsError

logger = logging.getLogger(__name__)

WakeupCallback = Callable[[], Awaitable[Any]]


def _default_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,
            "misfire_grace_time": 300,  # 5 minutes grace period
        },
    )


@dataclasses.dataclass
class APSchedulerWakeups:
    """
    Parameters
    ----------
    scheduler : an AsyncIOScheduler (a UTC one with coalescing is built if omitted)
    """

    scheduler: AsyncIOScheduler = dataclasses.field(default_factory=_default_scheduler)

    _callbacks: dict[str, WakeupCallback] = dataclasses.field(
        default_factory=dict, init=False, repr=False
    )

    def register(self, handler_name: str, callback: WakeupCallback) -> None:
        """Bind a handler name to the coroutine function it should invoke."""
        self._callbacks[handler_name] = callback

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Wake-up scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Wake-up scheduler stopped")

    async def arm_wakeup(self, handler_name: str, delay: timedelta) -> None:
        callback = self._callbacks.get(handler_name)
        if callback is None:
            raise KVJobsError(f"No wake-up callback registered for {handler_name!r}")
        await self.cancel_all(handler_name)
        run_date = datetime.now(timezone.utc) + delay
        self.scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_date),
            id=f"{handler_name}-{uuid.uuid4().hex}",
            name=handler_name,
        )
        logger.debug("Armed wake-up for %s at %s", handler_name, run_date.isoformat())

    async def cancel_all(self, handler_name: str) -> int:
        removed = 0
        for job in self.scheduler.get_jobs():
            if job.name == handler_name:
                job.remove()
                removed += 1
        return removed

    async def pending(self, handler_name: str) -> int:
        return sum(1 for job in self.scheduler.get_jobs() if job.name == handler_name)
