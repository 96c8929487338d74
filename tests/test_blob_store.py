import math
from unittest.mock import AsyncMock

import pytest

from kvjobs.adapters.cache.memory import InMemoryCache
from kvjobs.core import codec
from kvjobs.core.blob_store import BlobStore, chunk_key, manifest_key
from kvjobs.domain.errors import CheckpointExpiredError
from kvjobs.domain.models import HealthScoreEntry, Table


def _large_table(rows: int) -> Table:
    return Table(
        headers=("Primary Key", "Virtual Machine"),
        rows=tuple((f"VM-{i:05d}", f"vm-name-{i:05d}") for i in range(rows)),
    )


# ---------------------------------------------------------------------------
# save / load
# ---------------------------------------------------------------------------

async def test_small_value_round_trips(blobs):
    assert await blobs.save("p", {"a": 1}, 60)
    assert await blobs.load("p") == {"a": 1}


async def test_large_value_is_chunked_below_entry_limit(cache, blobs):
    table = _large_table(300)
    text = codec.encode_blob(table)
    assert len(text) > cache.max_entry_bytes

    assert await blobs.save("vms", table, 60)

    manifest = await cache.get(manifest_key("vms"))
    expected = math.ceil(len(text) / blobs.chunk_size)
    assert manifest == f'{{"totalChunks":{expected}}}'
    for i in range(expected):
        chunk = await cache.get(chunk_key("vms", i))
        assert chunk is not None
        assert len(chunk) <= cache.max_entry_bytes
    assert await blobs.load("vms", Table) == table


async def test_default_chunk_size_is_95_percent_of_entry_limit():
    store = BlobStore(InMemoryCache(max_entry_bytes=1000))
    assert store.chunk_size == 950


@pytest.mark.parametrize("chunk_size", [1, 7, 950, 1945])
async def test_round_trip_for_any_chunk_size(chunk_size):
    cache = InMemoryCache(max_entry_bytes=2048)
    store = BlobStore(cache, chunk_size)
    value = {
        "table": _large_table(40).model_dump(mode="json"),
        "scores": [{"name": "vm-\u00e9", "score": 1.5, "reasons": "uptime, tickets"}],
    }
    text = codec.encode_blob(value)

    assert await store.save("p", value, 60)

    assert await cache.get(manifest_key("p")) == f'{{"totalChunks":{math.ceil(len(text) / chunk_size)}}}'
    assert await store.load("p") == value


def test_non_positive_chunk_size_rejected():
    with pytest.raises(ValueError):
        BlobStore(InMemoryCache(), chunk_size=0)


async def test_empty_list_round_trips(blobs):
    assert await blobs.save("acc", [], 60)
    assert await blobs.load("acc") == []


async def test_load_validates_into_type(blobs):
    entries = [HealthScoreEntry(name="vm-1", score=3.5, reasons="old")]
    await blobs.save("acc", entries, 60)
    loaded = await blobs.load("acc", list[HealthScoreEntry])
    assert loaded == entries


async def test_load_missing_manifest_returns_none(blobs):
    assert await blobs.load("nothing") is None


async def test_missing_chunk_means_absent(cache, blobs):
    await blobs.save("vms", _large_table(300), 60)
    cache.evict(chunk_key("vms", 1))
    assert await blobs.load("vms") is None


async def test_malformed_manifest_returns_none(cache, blobs):
    await cache.put(manifest_key("p"), "{not json", 60)
    assert await blobs.load("p") is None


async def test_corrupt_chunk_returns_none(cache, blobs):
    await blobs.save("p", {"a": 1}, 60)
    await cache.put(chunk_key("p", 0), '{"a": ', 60)
    assert await blobs.load("p") is None


async def test_value_not_matching_into_returns_none(blobs):
    await blobs.save("p", {"a": 1}, 60)
    assert await blobs.load("p", list[int]) is None


async def test_expired_value_reads_as_absent():
    now = [0.0]
    store = BlobStore(InMemoryCache(max_entry_bytes=2048, clock=lambda: now[0]))
    await store.save("p", {"a": 1}, 30)
    now[0] = 31.0
    assert await store.load("p") is None


# ---------------------------------------------------------------------------
# Overwrite and removal
# ---------------------------------------------------------------------------

async def test_save_removes_chunks_of_previous_value(cache, blobs):
    await blobs.save("p", _large_table(300), 60)
    old_manifest = await cache.get(manifest_key("p"))
    old_chunks = int(old_manifest.split(":")[1].rstrip("}"))

    await blobs.save("p", {"small": True}, 60)

    assert await blobs.load("p") == {"small": True}
    for i in range(1, old_chunks):
        assert chunk_key("p", i) not in cache


async def test_save_ignores_unreadable_old_manifest(cache, blobs):
    await cache.put(manifest_key("p"), "garbage", 60)
    assert await blobs.save("p", [1, 2], 60)
    assert await blobs.load("p") == [1, 2]


async def test_save_failure_returns_false():
    cache = InMemoryCache(max_entry_bytes=2048)
    cache.put = AsyncMock(side_effect=RuntimeError("quota"))  # type: ignore[method-assign]
    store = BlobStore(cache)
    assert await store.save("p", {"a": 1}, 60) is False


async def test_remove_deletes_manifest_and_chunks(cache, blobs):
    await blobs.save("p", _large_table(300), 60)
    await blobs.remove("p")
    assert manifest_key("p") not in cache
    assert chunk_key("p", 0) not in cache
    assert await blobs.load("p") is None


async def test_remove_without_manifest_is_noop(blobs):
    await blobs.remove("never-saved")


# ---------------------------------------------------------------------------
# require
# ---------------------------------------------------------------------------

async def test_require_returns_value(blobs):
    await blobs.save("p", {"a": 1}, 60)
    assert await blobs.require("p") == {"a": 1}


async def test_require_missing_raises_named_error(blobs):
    with pytest.raises(CheckpointExpiredError) as info:
        await blobs.require("health_score_raw_vms", Table)
    assert info.value.prefix == "health_score_raw_vms"
