"""
Codec — serialize and deserialize Jobs and dead letters using Pydantic v2.

Jobs are a discriminated union, so decoding needs a TypeAdapter rather than a
single model class. The ``job_type`` field selects the variant.

Wire format of a job record (one key per job in the persistent store):
---------------------------------------------------------------------
{
  "origin": {"user_id": "42", "first_name": "Ana", "chat_id": -100, "status_message_id": 7},
  "job_type": "health_score_calculation",
  "stage": "process_batch",
  "context": {"batch_index": 1, "accumulated": 200}
}

Blob values are encoded as ASCII-only JSON, so that the character length of
the encoded text equals its size in bytes. That keeps chunk arithmetic exact.
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python

from kvjobs.domain.errors import JobDecodeError
from kvjobs.domain.models import DeadLetterEntry, Job

_JOB_ADAPTER: TypeAdapter[Job] = TypeAdapter(Job)


def encode_job(job: Job) -> bytes:
    """Serialize a Job to UTF-8 JSON bytes."""
    return _JOB_ADAPTER.dump_json(job)


def decode_job(data: bytes | str, key: str = "") -> Job:
    """Deserialize a Job. Raises JobDecodeError for unknown types or bad JSON."""
    try:
        return _JOB_ADAPTER.validate_json(data)
    except ValidationError as exc:
        raise JobDecodeError(key, exc) from exc


def encode_dead_letter(entry: DeadLetterEntry) -> bytes:
    return entry.model_dump_json().encode("utf-8")


def decode_dead_letter(data: bytes) -> DeadLetterEntry:
    return DeadLetterEntry.model_validate_json(data)


def encode_blob(value: Any) -> str:
    """Serialize any JSON-able value (models included) to ASCII JSON text."""
    return json.dumps(to_jsonable_python(value), ensure_ascii=True, separators=(",", ":"))


def decode_blob(text: str) -> Any:
    """Inverse of encode_blob. Raises ValueError on malformed text."""
    return json.loads(text)
