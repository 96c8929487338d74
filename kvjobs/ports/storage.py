"""
Storage ports — the two key-value backends kvjobs is built on.

Any object satisfying these structural Protocols can act as a backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

KeyValueStoragePort (durable)
-----------------------------
Holds queued jobs, dead letters and request metadata. Values are bytes and
usually small: backends may enforce a per-value ceiling and raise
ValueTooLargeError. Key listing carries no ordering guarantee; callers sort.

CachePort (ephemeral)
---------------------
Holds chunked intermediate state. Every entry carries a TTL and may vanish
at any time before it (eviction). Values are text and each entry has a size
ceiling, advertised through ``max_entry_bytes``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStoragePort(Protocol):
    """
    Minimal durable store required by JobStore.

    Implementing adapters (built-in):
      - InMemoryKeyValueStorage  — dict-based, for testing
      - FileSystemKeyValueStorage — one file per key, atomic rename
      - S3KeyValueStorage        — one object per key (aioboto3)
      - GCSKeyValueStorage       — one blob per key (google-cloud-storage)
    """

    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or None if the key does not exist."""
        ...

    async def put(self, key: str, value: bytes) -> None:
        """
        Unconditionally write a value.

        Raises
        ------
        ValueTooLargeError  if the backend has a per-value ceiling below len(value)
        StorageError        for any other I/O failure
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is not an error."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """All keys starting with prefix, in no particular order."""
        ...


@runtime_checkable
class CachePort(Protocol):
    """
    Minimal ephemeral cache required by BlobStore.

    Implementing adapters (built-in):
      - InMemoryCache — dict-based with TTL and entry ceiling, for testing
    """

    max_entry_bytes: int

    async def get(self, key: str) -> str | None:
        """Return the cached text, or None if missing or expired."""
        ...

    async def get_many(self, keys: list[str]) -> dict[str, str]:
        """Return only the keys that are present."""
        ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """
        Store text for ttl_seconds.

        Raises
        ------
        ValueTooLargeError  if value exceeds max_entry_bytes
        StorageError        for any other failure
        """
        ...

    async def delete_many(self, keys: list[str]) -> None:
        """Remove keys; missing keys are ignored."""
        ...
