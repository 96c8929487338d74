"""
BlobStore — chunked values on a size-limited ephemeral cache.

A value is encoded once (codec.encode_blob, ASCII JSON) and split into
fixed-size chunks below the cache's per-entry ceiling:

    <prefix>_manifest   {"totalChunks": 3}
    <prefix>_chunk_0    '{"headers":["Primary Key",...'
    <prefix>_chunk_1    '...'
    <prefix>_chunk_2    '...]}'

The manifest is written first, then every chunk, all with the same TTL.

Integrity rule
--------------
A read is valid only when the manifest exists *and* every chunk it names is
present. Partial availability (eviction mid-flight, TTL expiry between two
entries) is reported as absence, never as partial data.

Failure policy
--------------
save() logs and returns False instead of raising: a failed save only means
the stage that needed it must fail. remove() is best-effort. require() turns
absence into CheckpointExpiredError for callers that cannot proceed without
the value.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, TypeVar, overload

from pydantic import TypeAdapter, ValidationError

from kvjobs.core import codec
from kvjobs.domain.errors import CheckpointExpiredError
from kvjobs.domain.models import BlobManifest
from kvjobs.ports.storage import CachePort

logger = logging.getLogger(__name__)

T = TypeVar("T")


def manifest_key(prefix: str) -> str:
    return f"{prefix}_manifest"


def chunk_key(prefix: str, index: int) -> str:
    return f"{prefix}_chunk_{index}"


@dataclasses.dataclass
class BlobStore:
    """
    Parameters
    ----------
    cache      : any CachePort implementation
    chunk_size : characters per chunk; defaults to 95% of cache.max_entry_bytes
    """

    cache: CachePort
    chunk_size: int | None = None

    def __post_init__(self) -> None:
        if self.chunk_size is None:
            self.chunk_size = max(1, int(self.cache.max_entry_bytes * 0.95))
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

    # ------------------------------------------------------------------ #
    # Write                                                                #
    # ------------------------------------------------------------------ #

    async def save(self, prefix: str, value: Any, ttl_seconds: int) -> bool:
        """Replace the value under prefix. Returns False (and logs) on failure."""
        try:
            await self._remove_previous(prefix)
            text = codec.encode_blob(value)
            size = self.chunk_size or 1
            chunks = [text[i : i + size] for i in range(0, len(text), size)]

            manifest = BlobManifest(total_chunks=len(chunks))
            await self.cache.put(
                manifest_key(prefix),
                manifest.model_dump_json(by_alias=True),
                ttl_seconds,
            )
            for index, chunk in enumerate(chunks):
                await self.cache.put(chunk_key(prefix, index), chunk, ttl_seconds)
        except Exception:
            logger.exception("Saving chunked value %r failed", prefix)
            return False

        logger.info("Saved %r in %d chunk(s)", prefix, len(chunks))
        return True

    async def remove(self, prefix: str) -> None:
        """Delete manifest and chunks. No-op when the manifest is absent."""
        try:
            manifest = await self._read_manifest(prefix)
            if manifest is None:
                return
            await self.cache.delete_many(self._all_keys(prefix, manifest))
            logger.info("Removed chunked value %r", prefix)
        except Exception:
            logger.warning("Removing chunked value %r failed", prefix, exc_info=True)

    # ------------------------------------------------------------------ #
    # Read                                                                 #
    # ------------------------------------------------------------------ #

    @overload
    async def load(self, prefix: str) -> Any: ...

    @overload
    async def load(self, prefix: str, into: type[T]) -> T | None: ...

    async def load(self, prefix: str, into: Any = None) -> Any:
        """
        Reassemble the value under prefix.

        Returns None when the manifest is missing, any chunk is missing, or
        the reassembled text is not valid JSON (or not valid for ``into``).
        """
        try:
            manifest = await self._read_manifest(prefix)
        except (ValueError, ValidationError):
            logger.warning("Manifest of %r is malformed", prefix)
            return None
        if manifest is None:
            return None

        keys = [chunk_key(prefix, i) for i in range(manifest.total_chunks)]
        found = await self.cache.get_many(keys)
        missing = [k for k in keys if k not in found]
        if missing:
            logger.warning(
                "Cache integrity broken for %r: %d of %d chunk(s) missing (first: %s)",
                prefix,
                len(missing),
                len(keys),
                missing[0],
            )
            return None

        try:
            value = codec.decode_blob("".join(found[k] for k in keys))
            if into is not None:
                return TypeAdapter(into).validate_python(value)
            return value
        except (ValueError, ValidationError):
            logger.warning("Chunked value %r is corrupt", prefix, exc_info=True)
            return None

    @overload
    async def require(self, prefix: str) -> Any: ...

    @overload
    async def require(self, prefix: str, into: type[T]) -> T: ...

    async def require(self, prefix: str, into: Any = None) -> Any:
        """Like load(), but raise CheckpointExpiredError when absent."""
        value = await self.load(prefix, into) if into is not None else await self.load(prefix)
        if value is None:
            raise CheckpointExpiredError(prefix)
        return value

    # ------------------------------------------------------------------ #
    # Internal                                                             #
    # ------------------------------------------------------------------ #

    async def _read_manifest(self, prefix: str) -> BlobManifest | None:
        raw = await self.cache.get(manifest_key(prefix))
        if raw is None:
            return None
        return BlobManifest.model_validate_json(raw)

    async def _remove_previous(self, prefix: str) -> None:
        try:
            manifest = await self._read_manifest(prefix)
        except (ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable old manifest of %r: %s", prefix, exc)
            return
        if manifest is not None:
            await self.cache.delete_many(self._all_keys(prefix, manifest))

    @staticmethod
    def _all_keys(prefix: str, manifest: BlobManifest) -> list[str]:
        return [manifest_key(prefix)] + [
            chunk_key(prefix, i) for i in range(manifest.total_chunks)
        ]
