"""
JobQueue — the producer API and the operator surfaces.

Producers (chat commands, alert checks, periodic timers) call enqueue(). It
never takes the execution lock: it persists the job and, only when the queue
was empty beforehand, arms a wake-up for the processor. A burst of N enqueues
on an idle queue therefore arms exactly one wake-up; while jobs are waiting
the processor re-arms itself.

Operators use depth(), dead_letters() and replay().
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import timedelta

from kvjobs.core.job_store import JobStore
from kvjobs.domain.errors import JobDecodeError
from kvjobs.domain.models import JOB_KEY_PREFIX, DeadLetterEntry, Job, new_job_key
from kvjobs.ports.scheduler import WakeupSchedulerPort

logger = logging.getLogger(__name__)

PROCESS_QUEUE_HANDLER = "process_queue"


@dataclasses.dataclass
class JobQueue:
    """
    Parameters
    ----------
    store        : JobStore holding the active queue
    scheduler    : wake-up scheduler shared with the processor
    wakeup_delay : delay of the wake-up armed when the queue was empty
    """

    store: JobStore
    scheduler: WakeupSchedulerPort
    wakeup_delay: timedelta = timedelta(seconds=25)

    async def enqueue(self, job: Job, key: str | None = None) -> str:
        """Persist job, arm a wake-up if the queue was idle. Returns the key."""
        if key is None:
            key = new_job_key(job.job_type)
        elif not key.startswith(JOB_KEY_PREFIX):
            raise ValueError(f"Job keys must start with {JOB_KEY_PREFIX!r}, got {key!r}")

        was_empty = not await self.store.job_keys()
        await self.store.put(key, job)
        logger.info("Enqueued %s (%s)", key, job.job_type)
        if was_empty:
            await self._wake()
        return key

    async def depth(self) -> int:
        """Number of jobs waiting in the active queue."""
        return len(await self.store.job_keys())

    async def supersede(self, job_type: str) -> int:
        """Drop queued jobs of one type. Returns how many were removed."""
        removed = 0
        for key in await self.store.job_keys():
            try:
                job = await self.store.get(key)
            except JobDecodeError:
                continue
            if job is not None and job.job_type == job_type:
                await self.store.delete(key)
                removed += 1
        if removed:
            logger.info("Superseded %d queued %s job(s)", removed, job_type)
        return removed

    # ------------------------------------------------------------------ #
    # Dead letters                                                         #
    # ------------------------------------------------------------------ #

    async def dead_letters(self) -> list[DeadLetterEntry]:
        return [
            await self.store.get_dead_letter(key)
            for key in await self.store.dead_letter_keys()
        ]

    async def replay(self, dead_letter_key: str) -> str:
        """
        Re-enqueue a dead letter's verbatim payload under a fresh key.

        The dead letter is deleted only after the job is back in the queue.
        Raises DeadLetterNotFoundError for unknown keys.
        """
        entry = await self.store.get_dead_letter(dead_letter_key)
        key = new_job_key("replay")
        was_empty = not await self.store.job_keys()
        await self.store.put_raw(key, entry.raw_payload.encode("utf-8"))
        await self.store.delete_dead_letter(dead_letter_key)
        logger.info("Replayed %s as %s", dead_letter_key, key)
        if was_empty:
            await self._wake()
        return key

    async def _wake(self) -> None:
        logger.info("Queue was empty, waking the processor in %s", self.wakeup_delay)
        await self.scheduler.arm_wakeup(PROCESS_QUEUE_HANDLER, self.wakeup_delay)
