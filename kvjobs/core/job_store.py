"""
JobStore — queued jobs and dead letters on one durable key-value store.

Namespaces
----------
    job_<ts>_<seq>[_<tag>]       active queue (one record per Job)
    failed_<original job key>    dead letters (DeadLetterEntry JSON)

The backing store lists keys in no particular order. keys() always sorts, and
job keys embed a zero-padded timestamp, so the sorted listing is creation
order. Large state never goes into a record here; it lives in BlobStore and
is referenced by prefix.
"""
from __future__ import annotations

import dataclasses
import time

from kvjobs.core import codec
from kvjobs.domain.errors import DeadLetterNotFoundError
from kvjobs.domain.models import (
    DEAD_LETTER_PREFIX,
    JOB_KEY_PREFIX,
    DeadLetterEntry,
    Job,
)
from kvjobs.ports.storage import KeyValueStoragePort


@dataclasses.dataclass
class JobStore:
    """Thin typed layer over a KeyValueStoragePort."""

    storage: KeyValueStoragePort

    # ------------------------------------------------------------------ #
    # Generic                                                              #
    # ------------------------------------------------------------------ #

    async def keys(self, prefix: str) -> list[str]:
        """Keys under prefix, sorted."""
        return sorted(await self.storage.keys(prefix))

    async def delete(self, key: str) -> None:
        await self.storage.delete(key)

    # ------------------------------------------------------------------ #
    # Active jobs                                                          #
    # ------------------------------------------------------------------ #

    async def job_keys(self) -> list[str]:
        return await self.keys(JOB_KEY_PREFIX)

    async def put(self, key: str, job: Job) -> None:
        await self.storage.put(key, codec.encode_job(job))

    async def put_raw(self, key: str, raw: bytes) -> None:
        await self.storage.put(key, raw)

    async def get(self, key: str) -> Job | None:
        raw = await self.storage.get(key)
        if raw is None:
            return None
        return codec.decode_job(raw, key)

    async def pop_raw(self, key: str) -> bytes | None:
        """
        Read and delete one record.

        Once popped the job is invisible to every lister; whatever happens
        next, it is never returned to the active queue implicitly.
        """
        raw = await self.storage.get(key)
        await self.storage.delete(key)
        return raw

    # ------------------------------------------------------------------ #
    # Dead letters                                                         #
    # ------------------------------------------------------------------ #

    async def dead_letter(self, entry: DeadLetterEntry) -> str:
        """Store entry and return its key. An existing dead letter is never overwritten."""
        while await self.storage.get(entry.key) is not None:
            entry = entry.model_copy(update={"key_suffix": f"_{time.time_ns()}"})
        await self.storage.put(entry.key, codec.encode_dead_letter(entry))
        return entry.key

    async def dead_letter_keys(self) -> list[str]:
        return await self.keys(DEAD_LETTER_PREFIX)

    async def get_dead_letter(self, key: str) -> DeadLetterEntry:
        raw = await self.storage.get(key)
        if raw is None:
            raise DeadLetterNotFoundError(key)
        return codec.decode_dead_letter(raw)

    async def delete_dead_letter(self, key: str) -> None:
        await self.storage.delete(key)
