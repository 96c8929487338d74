"""
Domain models for kvjobs — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization (via codec.py)
  - the Job tagged union (discriminated on ``job_type``)
  - datetime parsing (ISO-8601 with timezone)
  - field validation and type coercion

All models are frozen (immutable). Mutations return new instances via
model_copy(update=...), following a functional-update style.
"""

import itertools
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

JOB_KEY_PREFIX = "job_"
DEAD_LETTER_PREFIX = "failed_"

_sequence = itertools.count()


def new_job_key(tag: str = "") -> str:
    """
    Return a fresh job key that sorts by creation time.

    Layout: ``job_<time_ns:020d>_<seq:06d>[_<tag>]``. The per-process sequence
    keeps keys distinct (and ordered) when two are minted in the same tick.
    """
    seq = next(_sequence) % 1_000_000
    key = f"{JOB_KEY_PREFIX}{time.time_ns():020d}_{seq:06d}"
    return f"{key}_{tag}" if tag else key


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------- #
# Stages                                                                  #
# ---------------------------------------------------------------------- #


class SyncStage(str, Enum):
    """Steps of the sync_and_report chain, in execution order."""

    COPY_VMS = "copy_vms"
    DIFF_VMS = "diff_vms"
    COPY_DATASTORES = "copy_datastores"
    DIFF_DATASTORES = "diff_datastores"
    REPORT = "report"


class HealthStage(str, Enum):
    """Steps of the health_score_calculation chain."""

    GATHER_DATA = "gather_data"
    PROCESS_BATCH = "process_batch"
    FINALIZE = "finalize"


# ---------------------------------------------------------------------- #
# Contexts                                                                #
# ---------------------------------------------------------------------- #


class JobOrigin(BaseModel):
    """Who asked for the job and where to report back."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    first_name: str | None = None
    chat_id: int | str | None = None
    status_message_id: int | None = None


class SyncContext(BaseModel):
    model_config = ConfigDict(frozen=True)


class ExportMenuContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    export_type: str


class ExportContext(BaseModel):
    """
    Contextual export request. Exactly one selector is expected:

    pk         — change history of one VM
    timeframe  — today's combined change log
    list_type  — VMs in a cluster or datastore named by item_name
    search_term — free-text VM search
    """

    model_config = ConfigDict(frozen=True)

    pk: str | None = None
    timeframe: str | None = None
    list_type: Literal["cluster", "datastore"] | None = None
    item_name: str | None = None
    search_term: str | None = None


class SimulationContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    sub_command: Literal["cleanup", "migration"]
    parameter: str


class HealthScoreContext(BaseModel):
    """
    batch_index — next batch to score
    accumulated — number of scores already in the accumulator checkpoint
    """

    model_config = ConfigDict(frozen=True)

    batch_index: int = Field(default=0, ge=0)
    accumulated: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------- #
# Jobs (tagged union)                                                     #
# ---------------------------------------------------------------------- #


class _JobBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: JobOrigin | None = None


class SyncAndReportJob(_JobBase):
    job_type: Literal["sync_and_report"] = "sync_and_report"
    stage: SyncStage = SyncStage.COPY_VMS
    context: SyncContext = Field(default_factory=SyncContext)


class ExportMenuJob(_JobBase):
    job_type: Literal["export_menu"] = "export_menu"
    context: ExportMenuContext


class ExportJob(_JobBase):
    job_type: Literal["export"] = "export"
    context: ExportContext


class SimulationJob(_JobBase):
    job_type: Literal["simulation"] = "simulation"
    context: SimulationContext


class HealthScoreJob(_JobBase):
    job_type: Literal["health_score_calculation"] = "health_score_calculation"
    stage: HealthStage = HealthStage.GATHER_DATA
    context: HealthScoreContext = Field(default_factory=HealthScoreContext)


Job = Annotated[
    Union[SyncAndReportJob, ExportMenuJob, ExportJob, SimulationJob, HealthScoreJob],
    Field(discriminator="job_type"),
]


# ---------------------------------------------------------------------- #
# Failure records                                                         #
# ---------------------------------------------------------------------- #


class DeadLetterEntry(BaseModel):
    """
    A job that failed irrecoverably, kept for manual diagnosis and replay.

    raw_payload — the job exactly as it was stored, even when it did not parse
    key_suffix  — set when an earlier dead letter of the same job key exists
    """

    model_config = ConfigDict(frozen=True)

    original_key: str
    raw_payload: str
    failure_message: str
    failure_trace: str = ""
    failed_at: datetime = Field(default_factory=_utcnow)
    key_suffix: str = ""

    @property
    def key(self) -> str:
        return f"{DEAD_LETTER_PREFIX}{self.original_key}{self.key_suffix}"


# ---------------------------------------------------------------------- #
# Blob cache                                                              #
# ---------------------------------------------------------------------- #


class BlobManifest(BaseModel):
    """Header entry of a chunked cache value. Wire form: {"totalChunks": n}."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_chunks: int = Field(alias="totalChunks", ge=0)


# ---------------------------------------------------------------------- #
# Collaborator value types                                                #
# ---------------------------------------------------------------------- #


class Table(BaseModel):
    """Header row plus data rows, as read from or written to a sheet."""

    model_config = ConfigDict(frozen=True)

    headers: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...] = ()
    title: str = ""

    def column(self, name: str) -> int:
        """Index of a header, -1 when absent."""
        try:
            return self.headers.index(name)
        except ValueError:
            return -1


class HealthScoreEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    score: float
    reasons: str = ""


class HealthReport(BaseModel):
    """Final output of a health-score run, read back by chat queries."""

    model_config = ConfigDict(frozen=True)

    evaluated: int
    entries: tuple[HealthScoreEntry, ...] = ()
    generated_at: datetime = Field(default_factory=_utcnow)
