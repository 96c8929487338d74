"""
JobProcessor — the time-boxed, self-rescheduling drain loop.

One run is one bounded activation, started by a wake-up (or directly):

  Idle ─► Acquiring ─► Draining ─► Dispatching ─► Draining ─► … ─► Idle

  1. Sweep stale wake-ups of ``process_queue`` so no duplicate stays armed.
  2. Try the execution lock with a bounded wait. Not acquired → another run
     is active; return without side effects.
  3. Until the soft deadline: list job keys (sorted = creation order), pop the
     first one (read + delete), decode and dispatch it. A handler may return
     the job's next stage; it is written back with a single put under a fresh
     key. Any failure moves the verbatim payload to the dead-letter namespace
     and notifies the operator channel.
  4. On every exit path: if jobs remain, arm one wake-up ``rearm_delay`` ahead;
     the lock is released when the scope closes.

Nothing raised by a job, a store call or the notifier escapes run(): the loop
is the outermost guarded boundary, so one bad job cannot stall the others.
"""
from __future__ import annotations

import dataclasses
import html
import logging
import time
import traceback
from collections.abc import Callable
from datetime import timedelta
from typing import Protocol

from kvjobs.config import Settings
from kvjobs.core import codec
from kvjobs.core.job_store import JobStore
from kvjobs.core.lock import hold
from kvjobs.core.queue import PROCESS_QUEUE_HANDLER
from kvjobs.domain.models import DeadLetterEntry, Job, new_job_key
from kvjobs.ports.lock import ExecutionLockPort
from kvjobs.ports.scheduler import WakeupSchedulerPort
from kvjobs.ports.services import ChatNotifier

logger = logging.getLogger(__name__)

_TRACE_LIMIT = 2000


class Dispatcher(Protocol):
    """Routes one decoded job to its handler; returns the next stage or None."""

    async def dispatch(self, job: Job) -> Job | None: ...


@dataclasses.dataclass(frozen=True)
class RunReport:
    """
    acquired  — False when another run held the lock (nothing else happened)
    processed — jobs popped during this run, failed ones included
    failed    — jobs moved to the dead-letter namespace
    remaining — active jobs left at exit, None if the count could not be read
    """

    acquired: bool
    processed: int = 0
    failed: int = 0
    remaining: int | None = 0


@dataclasses.dataclass
class JobProcessor:
    """
    Parameters
    ----------
    store        : JobStore with the active queue and dead letters
    scheduler    : wake-up scheduler
    lock         : execution lock guarding the active key set
    dispatcher   : job-type router
    notifier     : chat transport for operator alerts (optional)
    operator_chat_id : alert destination; None lets the notifier pick its operator channel
    time_budget  : soft wall-clock deadline of one run
    rearm_delay  : delay of the wake-up armed when work remains
    lock_timeout : bounded wait for the lock, in seconds
    clock        : monotonic seconds source
    """

    store: JobStore
    scheduler: WakeupSchedulerPort
    lock: ExecutionLockPort
    dispatcher: Dispatcher
    notifier: ChatNotifier | None = None
    operator_chat_id: int | str | None = None
    time_budget: timedelta = timedelta(minutes=5)
    rearm_delay: timedelta = timedelta(minutes=1)
    lock_timeout: float = 10.0
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: JobStore,
        scheduler: WakeupSchedulerPort,
        lock: ExecutionLockPort,
        dispatcher: Dispatcher,
        notifier: ChatNotifier | None = None,
    ) -> JobProcessor:
        return cls(
            store=store,
            scheduler=scheduler,
            lock=lock,
            dispatcher=dispatcher,
            notifier=notifier,
            operator_chat_id=settings.operator_chat_id,
            time_budget=settings.time_budget,
            rearm_delay=settings.rearm_delay,
            lock_timeout=settings.lock_timeout_seconds,
        )

    async def run(self) -> RunReport:
        """One activation. Never raises for job or storage failures."""
        try:
            await self.scheduler.cancel_all(PROCESS_QUEUE_HANDLER)
        except Exception:
            logger.exception("Could not sweep stale wake-ups")

        async with hold(self.lock, self.lock_timeout) as acquired:
            if not acquired:
                logger.warning("Queue run skipped: a previous run is still active")
                return RunReport(acquired=False)

            processed = failed = 0
            try:
                deadline = self.clock() + self.time_budget.total_seconds()
                while self.clock() < deadline:
                    keys = await self.store.job_keys()
                    if not keys:
                        logger.info("Queue is empty, stopping")
                        break
                    ok = await self._process_one(keys[0])
                    processed += 1
                    if not ok:
                        failed += 1
                else:
                    logger.info("Time budget of %s used up", self.time_budget)
            except Exception:
                logger.exception("Queue run aborted by a storage failure")
            finally:
                remaining = await self._rearm_if_needed()

        return RunReport(True, processed, failed, remaining)

    # ------------------------------------------------------------------ #
    # Per-job handling                                                     #
    # ------------------------------------------------------------------ #

    async def _process_one(self, key: str) -> bool:
        """Pop, decode, dispatch. Returns False if the job was dead-lettered."""
        raw = await self.store.pop_raw(key)
        if raw is None:
            logger.warning("Job %s vanished before it could be read", key)
            return True

        try:
            job = codec.decode_job(raw, key)
            logger.info(
                "Processing %s (type: %s, stage: %s)",
                key,
                job.job_type,
                getattr(job, "stage", None) and job.stage.value,  # type: ignore[union-attr]
            )
            next_job = await self.dispatcher.dispatch(job)
            if next_job is not None:
                next_key = new_job_key(next_job.job_type)
                await self.store.put(next_key, next_job)
                logger.info("Scheduled next stage of %s as %s", key, next_key)
            return True
        except Exception as exc:
            await self._dead_letter(key, raw, exc)
            return False

    async def _dead_letter(self, key: str, raw: bytes, exc: Exception) -> None:
        entry = DeadLetterEntry(
            original_key=key,
            raw_payload=raw.decode("utf-8", errors="replace"),
            failure_message=str(exc) or type(exc).__name__,
            failure_trace="".join(traceback.format_exception(exc)),
        )
        logger.error("Job %s failed, moving it to the dead-letter queue", key, exc_info=exc)

        try:
            stored_key = await self.store.dead_letter(entry)
        except Exception:
            logger.exception("Dead-letter write for %s failed; payload was %r", key, entry.raw_payload)
            return

        await self._notify_operator(stored_key, entry)

    async def _notify_operator(self, dead_letter_key: str, entry: DeadLetterEntry) -> None:
        if self.notifier is None:
            return
        text = (
            "🔴 <b>Background job failed</b>\n\n"
            "The job was moved to the dead-letter queue.\n\n"
            f"<b>Key:</b>\n<code>{html.escape(dead_letter_key)}</code>\n\n"
            f"<b>Cause:</b>\n<pre>{html.escape(entry.failure_message)}</pre>\n\n"
            f"<b>Trace:</b>\n<pre>{html.escape(entry.failure_trace[-_TRACE_LIMIT:])}</pre>"
        )
        try:
            await self.notifier.send_message(text, self.operator_chat_id, "HTML")
        except Exception:
            logger.exception("Could not notify the operator about %s", dead_letter_key)

    async def _rearm_if_needed(self) -> int | None:
        try:
            remaining = len(await self.store.job_keys())
            if remaining:
                logger.info(
                    "%d job(s) left, next run in %s", remaining, self.rearm_delay
                )
                await self.scheduler.arm_wakeup(PROCESS_QUEUE_HANDLER, self.rearm_delay)
            else:
                logger.info("All jobs done, wake-up chain stops")
            return remaining
        except Exception:
            logger.exception("Could not re-arm the processor wake-up")
            return None
