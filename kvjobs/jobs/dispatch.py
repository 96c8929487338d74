"""
JobHandlers — the processor's dispatcher.

Routes each Job variant to its handler with an exhaustive ``match``. Handlers
of multi-stage jobs return the next stage; single-shot handlers return None.

    handlers = JobHandlers.build(
        settings=settings,
        cache=InMemoryCache(),
        notifier=bot,
        repository=sheets,
        sync=sheets,
        reports=reports,
        exporter=exporter,
        simulator=simulator,
        scorer=scorer,
    )
    processor = JobProcessor(store, scheduler, lock, handlers, notifier=bot)
"""
from __future__ import annotations

import dataclasses

from kvjobs.config import Settings
from kvjobs.core.blob_store import BlobStore
from kvjobs.domain.errors import KVJobsError
from kvjobs.domain.models import (
    ExportJob,
    ExportMenuJob,
    HealthScoreJob,
    Job,
    SimulationJob,
    SyncAndReportJob,
)
from kvjobs.jobs.export import ExportHandler
from kvjobs.jobs.health_score import HealthScoreHandler
from kvjobs.jobs.simulation import SimulationHandler
from kvjobs.jobs.sync_report import SyncAndReportHandler
from kvjobs.ports.services import (
    ChatNotifier,
    HealthScorer,
    InventoryRepository,
    InventorySync,
    ReportGenerator,
    SheetExporter,
    Simulator,
)
from kvjobs.ports.storage import CachePort


@dataclasses.dataclass
class JobHandlers:
    sync_report: SyncAndReportHandler
    exports: ExportHandler
    simulation: SimulationHandler
    health_score: HealthScoreHandler
    notifier: ChatNotifier

    @classmethod
    def build(
        cls,
        *,
        settings: Settings,
        cache: CachePort,
        notifier: ChatNotifier,
        repository: InventoryRepository,
        sync: InventorySync,
        reports: ReportGenerator,
        exporter: SheetExporter,
        simulator: Simulator,
        scorer: HealthScorer,
    ) -> JobHandlers:
        # Bounded by the wired cache as well as by Settings.
        chunk_size = min(settings.chunk_size, max(1, int(cache.max_entry_bytes * settings.chunk_ratio)))
        blobs = BlobStore(cache, chunk_size)
        return cls(
            sync_report=SyncAndReportHandler(sync, reports, notifier),
            exports=ExportHandler(repository, reports, exporter, notifier, settings),
            simulation=SimulationHandler(simulator, notifier),
            health_score=HealthScoreHandler(repository, scorer, blobs, notifier, settings),
            notifier=notifier,
        )

    async def dispatch(self, job: Job) -> Job | None:
        match job:
            case SyncAndReportJob():
                return await self.sync_report(job)
            case ExportMenuJob():
                await self.exports.export_menu(job)
            case ExportJob():
                await self.exports.export(job)
            case SimulationJob():
                await self.simulation(job)
            case HealthScoreJob():
                return await self.health_score(job)
            case _:
                raise KVJobsError(f"No handler for job type {getattr(job, 'job_type', job)!r}")
        return None
