"""
health_score_calculation — VM health scoring in resumable batches.

Scoring every VM against 90 days of change history and the open tickets does
not fit in one processor run, so the work is a three-stage chain:

    gather_data ─► process_batch(0) ─► process_batch(1) ─► … ─► finalize

gather_data reads the sheets once and checkpoints pre-indexed inputs in the
BlobStore. Each process_batch scores ``health_batch_size`` VMs and appends to
the accumulator checkpoint. finalize ranks the scores, stores the report and
clears every checkpoint. N VMs take exactly ceil(N / batch size) batches.

Checkpoints carry a TTL. A chain that stalls longer than the TTL finds its
inputs gone, fails with CheckpointExpiredError and is dead-lettered.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from kvjobs.config import Settings
from kvjobs.core.blob_store import BlobStore
from kvjobs.core.queue import JobQueue
from kvjobs.core.stages import DONE, Advance, StageRunner, Transition
from kvjobs.domain.errors import CheckpointExpiredError, CheckpointWriteError, KVJobsError
from kvjobs.domain.models import (
    HealthReport,
    HealthScoreContext,
    HealthScoreEntry,
    HealthScoreJob,
    HealthStage,
    JobOrigin,
    Table,
)
from kvjobs.ports.services import ChatNotifier, HealthScorer, InventoryRepository
from kvjobs.ports.storage import CachePort

logger = logging.getLogger(__name__)

RAW_VMS = "health_score_raw_vms"
RAW_HISTORY = "health_score_raw_history"
RAW_TICKETS = "health_score_raw_tickets"
ACCUMULATOR = "health_score_accumulator"
CHECKPOINTS = (RAW_VMS, RAW_HISTORY, RAW_TICKETS, ACCUMULATOR)

REPORT = "health_score_report"
REQUESTER_KEY = "health_report_requester"

Index = dict[str, list[list[Any]]]

_LOCATION_SUFFIX = re.compile(r"-VC\d+$", re.IGNORECASE)


def normalize_primary_key(pk: Any) -> str:
    """Strip the vCenter suffix: ``VM-001-VC01`` -> ``VM-001``."""
    if not isinstance(pk, str) or not pk:
        return ""
    return _LOCATION_SUFFIX.sub("", pk).strip()


def build_history_index(logs: Table, pk_header: str, action_header: str, action: str) -> Index:
    """Change-log rows with the given action, grouped by normalized primary key."""
    pk_i, action_i = logs.column(pk_header), logs.column(action_header)
    if pk_i == -1 or action_i == -1:
        logger.warning("Change log lacks %r or %r; history index is empty", pk_header, action_header)
        return {}

    index: Index = {}
    for row in logs.rows:
        if row[action_i] == action:
            index.setdefault(normalize_primary_key(row[pk_i]), []).append(list(row))
    return index


def build_ticket_index(
    tickets: Table, vm_name_header: str, status_header: str, closed_statuses: Iterable[str]
) -> Index:
    """Open tickets grouped by VM name. Rows without a status are skipped."""
    name_i, status_i = tickets.column(vm_name_header), tickets.column(status_header)
    if name_i == -1 or status_i == -1:
        logger.warning("Ticket sheet lacks %r or %r; ticket index is empty", vm_name_header, status_header)
        return {}

    closed = {s.lower() for s in closed_statuses}
    index: Index = {}
    for row in tickets.rows:
        status = str(row[status_i] or "").lower().strip()
        vm_name = row[name_i]
        if status and status not in closed and vm_name:
            index.setdefault(str(vm_name), []).append(list(row))
    return index


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclasses.dataclass
class HealthScoreHandler:
    """
    Parameters
    ----------
    repository : inventory read side
    scorer     : per-VM scoring function
    blobs      : checkpoint and report storage
    notifier   : chat transport for the "report ready" message
    settings   : batch size, TTLs, headers
    clock      : timezone-aware "now"
    """

    repository: InventoryRepository
    scorer: HealthScorer
    blobs: BlobStore
    notifier: ChatNotifier
    settings: Settings
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        self._runner: StageRunner[HealthScoreJob] = StageRunner(
            "health_score_calculation",
            {
                HealthStage.GATHER_DATA: self.gather_data,
                HealthStage.PROCESS_BATCH: self.process_batch,
                HealthStage.FINALIZE: self.finalize,
            },
        )

    async def __call__(self, job: HealthScoreJob) -> HealthScoreJob | None:
        return await self._runner.step(job)

    # ------------------------------------------------------------------ #
    # Stages                                                               #
    # ------------------------------------------------------------------ #

    async def gather_data(self, job: HealthScoreJob) -> Transition:
        s = self.settings
        vms = await self.repository.all_vms()
        logs = await self.repository.combined_logs(self.clock() - timedelta(days=s.health_history_days))
        tickets = await self.repository.all_tickets()

        history = build_history_index(logs, s.log_primary_key_header, s.log_action_header, s.health_history_action)
        open_tickets = build_ticket_index(
            tickets, s.ticket_vm_name_header, s.ticket_status_header, s.closed_ticket_statuses
        )

        await self._checkpoint(RAW_VMS, vms)
        await self._checkpoint(RAW_HISTORY, history)
        await self._checkpoint(RAW_TICKETS, open_tickets)
        await self._checkpoint(ACCUMULATOR, [])
        logger.info(
            "Gathered %d VM(s), history for %d, open tickets for %d",
            len(vms.rows),
            len(history),
            len(open_tickets),
        )

        if not vms.rows:
            return Advance(HealthStage.FINALIZE, HealthScoreContext())
        return Advance(HealthStage.PROCESS_BATCH, HealthScoreContext(batch_index=0))

    async def process_batch(self, job: HealthScoreJob) -> Transition:
        s = self.settings
        ctx = job.context
        vms = await self.blobs.require(RAW_VMS, Table)
        history = await self.blobs.require(RAW_HISTORY, Index)
        open_tickets = await self.blobs.require(RAW_TICKETS, Index)
        scores = await self.blobs.require(ACCUMULATOR, list[HealthScoreEntry])

        # A replayed batch must not score its VMs twice.
        if len(scores) < ctx.accumulated:
            raise CheckpointExpiredError(ACCUMULATOR)
        scores = scores[: ctx.accumulated]

        start = ctx.batch_index * s.health_batch_size
        batch = vms.rows[start : start + s.health_batch_size]
        if not batch:
            return Advance(HealthStage.FINALIZE, ctx)

        pk_i, name_i = vms.column(s.vm_primary_key_header), vms.column(s.vm_name_header)
        if pk_i == -1 or name_i == -1:
            raise KVJobsError(
                f"VM sheet lacks {s.vm_primary_key_header!r} or {s.vm_name_header!r}"
            )

        for row in batch:
            name = str(row[name_i])
            score, reasons = self.scorer.score(
                row,
                vms.headers,
                history.get(normalize_primary_key(row[pk_i]), []),
                open_tickets.get(name, []),
            )
            scores.append(HealthScoreEntry(name=name, score=score, reasons=", ".join(reasons)))

        await self._checkpoint(ACCUMULATOR, scores)
        logger.info("Scored batch %d (%d VM(s), %d total)", ctx.batch_index, len(batch), len(scores))

        following = HealthScoreContext(batch_index=ctx.batch_index + 1, accumulated=len(scores))
        if start + len(batch) >= len(vms.rows):
            return Advance(HealthStage.FINALIZE, following)
        return Advance(HealthStage.PROCESS_BATCH, following)

    async def finalize(self, job: HealthScoreJob) -> Transition:
        scores = await self.blobs.require(ACCUMULATOR, list[HealthScoreEntry])
        ranked = sorted((e for e in scores if e.score > 0), key=lambda e: e.score, reverse=True)
        report = HealthReport(
            evaluated=len(scores),
            entries=tuple(ranked[: self.settings.health_top_n]),
            generated_at=self.clock(),
        )
        await self._checkpoint(REPORT, report, self.settings.result_ttl_seconds)
        logger.info("Health report ready: %d evaluated, %d flagged", report.evaluated, len(ranked))

        await self._notify_requester()
        for prefix in CHECKPOINTS:
            await self.blobs.remove(prefix)
        return DONE

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    async def _checkpoint(self, prefix: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds or self.settings.checkpoint_ttl_seconds
        if not await self.blobs.save(prefix, value, ttl):
            raise CheckpointWriteError(prefix)

    async def _notify_requester(self) -> None:
        cache = self.blobs.cache
        try:
            requester = await cache.get(REQUESTER_KEY)
            if requester is None:
                return
            await self.notifier.send_message(
                "✅ The VM health report you asked for is ready.\n\n"
                "Run the health report command again to view it.",
                requester,
            )
            await cache.delete_many([REQUESTER_KEY])
        except Exception:
            logger.exception("Could not tell the requester that the health report is ready")


async def start_health_score(
    queue: JobQueue,
    cache: CachePort,
    settings: Settings,
    requester_chat_id: int | str | None = None,
    origin: JobOrigin | None = None,
) -> str:
    """
    Start a fresh chain. Queued jobs of an older chain are dropped first and
    the requester (if any) is remembered for ``requester_ttl_seconds``.
    """
    superseded = await queue.supersede("health_score_calculation")
    if superseded:
        logger.info("Dropped %d job(s) of an older health-score chain", superseded)
    if requester_chat_id is not None:
        await cache.put(REQUESTER_KEY, str(requester_chat_id), settings.requester_ttl_seconds)
    return await queue.enqueue(HealthScoreJob(origin=origin))


async def read_health_report(blobs: BlobStore) -> HealthReport | None:
    """The last finished report, or None if none is cached."""
    return await blobs.load(REPORT, HealthReport)
