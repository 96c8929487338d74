import asyncio

import pytest

from kvjobs.adapters.storage.memory import InMemoryKeyValueStorage
from kvjobs.domain.errors import ValueTooLargeError
from kvjobs.ports.storage import KeyValueStoragePort


async def test_get_missing_returns_none():
    storage = InMemoryKeyValueStorage()
    assert await storage.get("job_1") is None


async def test_put_then_get():
    storage = InMemoryKeyValueStorage()
    await storage.put("job_1", b"hello")
    assert await storage.get("job_1") == b"hello"


async def test_put_overwrites():
    storage = InMemoryKeyValueStorage()
    await storage.put("k", b"first")
    await storage.put("k", b"second")
    assert await storage.get("k") == b"second"


async def test_delete_is_idempotent():
    storage = InMemoryKeyValueStorage()
    await storage.put("k", b"v")
    await storage.delete("k")
    await storage.delete("k")
    assert await storage.get("k") is None


async def test_keys_filters_by_prefix():
    storage = InMemoryKeyValueStorage(initial={"job_1": b"", "job_2": b"", "failed_job_0": b""})
    assert sorted(await storage.keys("job_")) == ["job_1", "job_2"]
    assert await storage.keys("failed_") == ["failed_job_0"]
    assert len(await storage.keys()) == 3


async def test_value_ceiling_enforced():
    storage = InMemoryKeyValueStorage(max_value_bytes=4)
    await storage.put("ok", b"1234")
    with pytest.raises(ValueTooLargeError):
        await storage.put("big", b"12345")
    assert await storage.get("big") is None


async def test_concurrent_puts_all_land():
    storage = InMemoryKeyValueStorage()
    await asyncio.gather(*(storage.put(f"job_{i}", b"x") for i in range(50)))
    assert len(await storage.keys("job_")) == 50


def test_satisfies_port():
    assert isinstance(InMemoryKeyValueStorage(), KeyValueStoragePort)
