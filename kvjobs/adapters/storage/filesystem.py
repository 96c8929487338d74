"""
FileSystemKeyValueStorage — one file per key in a local directory.

Suitable for local development and single-machine deployments where the
queue must survive a restart. NOT suitable for multi-machine deployments —
use S3KeyValueStorage or GCSKeyValueStorage for those.

Write strategy
--------------
Each put writes to a temporary sibling file and renames it over the target
with os.replace, so a reader never observes a half-written value. Keys are
percent-encoded into file names, so any key string is accepted.

POSIX rename semantics are assumed (Linux, macOS).
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from kvjobs.domain.errors import StorageError, ValueTooLargeError

_SUFFIX = ".val"


@dataclasses.dataclass
class FileSystemKeyValueStorage:
    """
    Parameters
    ----------
    root            : directory holding one file per key (created if absent)
    max_value_bytes : per-value ceiling, or None for unlimited
    """

    root: Path
    max_value_bytes: int | None = None

    def __init__(self, root: str | Path, max_value_bytes: int | None = None) -> None:
        self.root = Path(root)
        self.max_value_bytes = max_value_bytes

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._sync_get, key)

    async def put(self, key: str, value: bytes) -> None:
        if self.max_value_bytes is not None and len(value) > self.max_value_bytes:
            raise ValueTooLargeError(key, len(value), self.max_value_bytes)
        await asyncio.to_thread(self._sync_put, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._sync_delete, key)

    async def keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._sync_keys, prefix)

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}{_SUFFIX}"

    def _sync_get(self, key: str) -> bytes | None:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"read of {key!r} failed", exc) from exc

    def _sync_put(self, key: str, value: bytes) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(value)
                os.replace(tmp, self._path(key))
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"write of {key!r} failed", exc) from exc

    def _sync_delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"delete of {key!r} failed", exc) from exc

    def _sync_keys(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        found: list[str] = []
        for entry in self.root.iterdir():
            if not entry.name.endswith(_SUFFIX):
                continue
            key = unquote(entry.name[: -len(_SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return found
