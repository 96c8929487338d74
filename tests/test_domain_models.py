import pydantic
import pytest
from pydantic import TypeAdapter

from kvjobs.domain.models import (
    BlobManifest,
    DeadLetterEntry,
    ExportMenuJob,
    HealthScoreContext,
    HealthScoreJob,
    HealthStage,
    Job,
    SimulationJob,
    SyncAndReportJob,
    SyncStage,
    Table,
    new_job_key,
)

# ---------------------------------------------------------------------------
# Job keys
# ---------------------------------------------------------------------------


def test_new_job_key_has_prefix_and_tag():
    key = new_job_key("export")
    assert key.startswith("job_")
    assert key.endswith("_export")


def test_new_job_key_without_tag():
    key = new_job_key()
    assert key.startswith("job_")
    assert key.count("_") == 2


def test_new_job_keys_sort_in_creation_order():
    keys = [new_job_key("x") for _ in range(500)]
    assert sorted(keys) == keys
    assert len(set(keys)) == 500


# ---------------------------------------------------------------------------
# Job union
# ---------------------------------------------------------------------------


def test_multi_stage_jobs_start_at_first_stage():
    assert SyncAndReportJob().stage is SyncStage.COPY_VMS
    job = HealthScoreJob()
    assert job.stage is HealthStage.GATHER_DATA
    assert job.context == HealthScoreContext(batch_index=0, accumulated=0)


def test_discriminator_selects_variant():
    adapter = TypeAdapter(Job)
    job = adapter.validate_python(
        {"job_type": "simulation", "context": {"sub_command": "cleanup", "parameter": "VC01"}}
    )
    assert isinstance(job, SimulationJob)
    assert job.context.parameter == "VC01"


def test_unknown_job_type_rejected():
    with pytest.raises(pydantic.ValidationError):
        TypeAdapter(Job).validate_python({"job_type": "mystery", "context": {}})


def test_jobs_are_frozen():
    job = ExportMenuJob(context={"export_type": "all_vms"})
    with pytest.raises(pydantic.ValidationError):
        job.context = None  # type: ignore[misc]


def test_model_copy_advances_stage():
    job = HealthScoreJob()
    nxt = job.model_copy(update={"stage": HealthStage.PROCESS_BATCH})
    assert nxt.stage is HealthStage.PROCESS_BATCH
    assert job.stage is HealthStage.GATHER_DATA


def test_negative_batch_index_rejected():
    with pytest.raises(pydantic.ValidationError):
        HealthScoreContext(batch_index=-1)


# ---------------------------------------------------------------------------
# Other values
# ---------------------------------------------------------------------------


def test_dead_letter_key_prefixes_original():
    entry = DeadLetterEntry(original_key="job_1_x", raw_payload="{}", failure_message="boom")
    assert entry.key == "failed_job_1_x"
    assert entry.failed_at.tzinfo is not None


def test_blob_manifest_wire_form():
    manifest = BlobManifest(total_chunks=3)
    assert manifest.model_dump_json(by_alias=True) == '{"totalChunks":3}'
    assert BlobManifest.model_validate_json('{"totalChunks": 2}').total_chunks == 2


def test_table_column_lookup():
    table = Table(headers=("A", "B"), rows=(("1", "2"),))
    assert table.column("B") == 1
    assert table.column("missing") == -1
