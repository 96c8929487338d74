"""
sync_and_report — refresh the inventory sheets, then send the daily report.

Each step is one stage so a slow copy cannot push the whole chain past the
processor's time budget:

    copy_vms ─► diff_vms ─► copy_datastores ─► diff_datastores ─► report
"""
from __future__ import annotations

import dataclasses
import logging

from kvjobs.core.stages import DONE, Advance, StageRunner, Transition
from kvjobs.domain.models import SyncAndReportJob, SyncStage
from kvjobs.ports.services import ChatNotifier, InventorySync, ReportGenerator

logger = logging.getLogger(__name__)

VM_ENTITY = "vm"
DATASTORE_ENTITY = "datastore"

_ORDER: tuple[SyncStage, ...] = tuple(SyncStage)


def next_sync_stage(stage: SyncStage) -> SyncStage | None:
    """Stage after ``stage``, None after the last one."""
    position = _ORDER.index(stage)
    return _ORDER[position + 1] if position + 1 < len(_ORDER) else None


@dataclasses.dataclass
class SyncAndReportHandler:
    sync: InventorySync
    reports: ReportGenerator
    notifier: ChatNotifier

    def __post_init__(self) -> None:
        self._runner: StageRunner[SyncAndReportJob] = StageRunner(
            "sync_and_report",
            {
                SyncStage.COPY_VMS: self.copy_vms,
                SyncStage.DIFF_VMS: self.diff_vms,
                SyncStage.COPY_DATASTORES: self.copy_datastores,
                SyncStage.DIFF_DATASTORES: self.diff_datastores,
                SyncStage.REPORT: self.report,
            },
        )

    async def __call__(self, job: SyncAndReportJob) -> SyncAndReportJob | None:
        return await self._runner.step(job)

    async def copy_vms(self, job: SyncAndReportJob) -> Transition:
        await self.sync.copy_sheet(VM_ENTITY)
        return _advance(job)

    async def diff_vms(self, job: SyncAndReportJob) -> Transition:
        await self.sync.process_changes(VM_ENTITY)
        return _advance(job)

    async def copy_datastores(self, job: SyncAndReportJob) -> Transition:
        await self.sync.copy_sheet(DATASTORE_ENTITY)
        return _advance(job)

    async def diff_datastores(self, job: SyncAndReportJob) -> Transition:
        await self.sync.process_changes(DATASTORE_ENTITY)
        return _advance(job)

    async def report(self, job: SyncAndReportJob) -> Transition:
        text = await self.reports.daily_report()
        chat_id = job.origin.chat_id if job.origin else None
        await self.notifier.send_message(text, chat_id)
        logger.info("Daily report sent to %s", chat_id or "the operator channel")
        return _advance(job)


def _advance(job: SyncAndReportJob) -> Transition:
    following = next_sync_stage(job.stage)
    return DONE if following is None else Advance(following)
