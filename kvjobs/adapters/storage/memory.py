"""
InMemoryKeyValueStorage — dict-based durable store for testing and development.

An asyncio.Lock serializes access, so concurrent coroutines see each write
whole. An optional ``max_value_bytes`` reproduces the small per-value ceiling
of the production backend, which keeps oversized job contexts honest in tests.

Zero external dependencies. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses

from kvjobs.domain.errors import ValueTooLargeError


@dataclasses.dataclass
class InMemoryKeyValueStorage:
    """
    In-process key-value store.

    Parameters
    ----------
    max_value_bytes : per-value ceiling, or None for unlimited
    initial         : optional pre-populated entries (useful for test setup)
    """

    max_value_bytes: int | None = None
    initial: dict[str, bytes] = dataclasses.field(default_factory=dict)

    def __post_init__(self) -> None:
        self._data: dict[str, bytes] = dict(self.initial)
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        """Write a value. Raises ValueTooLargeError above max_value_bytes."""
        if self.max_value_bytes is not None and len(value) > self.max_value_bytes:
            raise ValueTooLargeError(key, len(value), self.max_value_bytes)
        async with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        async with self._lock:
            return [k for k in self._data if k.startswith(prefix)]
