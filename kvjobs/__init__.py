"""
kvjobs — background jobs on a size-limited key-value store.

A durable job queue for a chat bot that has no worker processes of its own:
jobs are records in a persistent key-value store, and a processor is started
by coarse one-shot wake-ups. Each run drains the queue within a time budget,
then re-arms itself if work is left.

Jobs longer than one run are split into stages. A stage hands its successor
back to the processor, which enqueues it; large intermediate state is
checkpointed in a chunked blob cache (BlobStore) with a TTL. Failed jobs are
moved verbatim to a dead-letter namespace and the operator is notified.

Quick start
-----------
    import asyncio
    from kvjobs import JobProcessor, JobQueue, JobStore, SimulationJob
    from kvjobs.adapters.lock.memory import InMemoryLock
    from kvjobs.adapters.scheduler.memory import InMemoryScheduler
    from kvjobs.adapters.storage.memory import InMemoryKeyValueStorage
    from kvjobs.domain.models import SimulationContext

    class PrintingDispatcher:
        async def dispatch(self, job):
            print("handling", job.job_type, job.context)
            return None  # single-shot: no next stage

    async def main():
        store = JobStore(InMemoryKeyValueStorage())
        scheduler = InMemoryScheduler()
        queue = JobQueue(store, scheduler)

        await queue.enqueue(
            SimulationJob(context=SimulationContext(sub_command="cleanup", parameter="VC01"))
        )

        processor = JobProcessor(store, scheduler, InMemoryLock(), PrintingDispatcher())
        report = await processor.run()
        print(report.processed, report.failed)

    asyncio.run(main())

In a deployment the dispatcher is JobHandlers.build(...) wired with the real
chat, sheet and scoring collaborators (see kvjobs.jobs.dispatch).

Adapters
--------
Built-in (no extra deps):
  - InMemoryKeyValueStorage, FileSystemKeyValueStorage
  - InMemoryCache
  - InMemoryScheduler, APSchedulerWakeups
  - InMemoryLock, FileLock (fcntl.flock)

Optional (install extras):
  - S3KeyValueStorage   (pip install "kvjobs[s3]")
  - GCSKeyValueStorage  (pip install "kvjobs[gcs]")

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (Job union, DeadLetterEntry, HealthReport)
  ports/    — Protocol interfaces (storage, cache, scheduler, lock, services)
  core/     — BlobStore, JobStore, JobQueue, JobProcessor, StageRunner
  jobs/     — job-type handlers and the dispatcher
  adapters/ — concrete backends
"""
from __future__ import annotations

from kvjobs.config import Settings
from kvjobs.core.blob_store import BlobStore
from kvjobs.core.job_store import JobStore
from kvjobs.core.processor import JobProcessor, RunReport
from kvjobs.core.queue import PROCESS_QUEUE_HANDLER, JobQueue
from kvjobs.core.stages import DONE, Advance, StageRunner
from kvjobs.domain.errors import (
    CheckpointError,
    CheckpointExpiredError,
    CheckpointWriteError,
    DeadLetterNotFoundError,
    JobDecodeError,
    KVJobsError,
    StorageError,
    ValueTooLargeError,
)
from kvjobs.domain.models import (
    DeadLetterEntry,
    ExportJob,
    ExportMenuJob,
    HealthReport,
    HealthScoreJob,
    Job,
    JobOrigin,
    SimulationJob,
    SyncAndReportJob,
    Table,
)
from kvjobs.jobs.dispatch import JobHandlers
from kvjobs.ports.storage import CachePort, KeyValueStoragePort

__all__ = [
    # Domain models
    "Job",
    "JobOrigin",
    "SyncAndReportJob",
    "ExportMenuJob",
    "ExportJob",
    "SimulationJob",
    "HealthScoreJob",
    "DeadLetterEntry",
    "HealthReport",
    "Table",
    # Errors
    "KVJobsError",
    "StorageError",
    "ValueTooLargeError",
    "JobDecodeError",
    "CheckpointError",
    "CheckpointExpiredError",
    "CheckpointWriteError",
    "DeadLetterNotFoundError",
    # Ports
    "KeyValueStoragePort",
    "CachePort",
    # Core
    "BlobStore",
    "JobStore",
    "JobQueue",
    "JobProcessor",
    "RunReport",
    "StageRunner",
    "Advance",
    "DONE",
    "PROCESS_QUEUE_HANDLER",
    "JobHandlers",
    # Config
    "Settings",
]
