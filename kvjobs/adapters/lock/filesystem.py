"""
FileLock — fcntl.flock-based execution lock for POSIX systems.

Serializes processor runs across processes on one machine (cron entry point,
CLI and a long-running service sharing a storage directory). The lock is
held for as long as the file descriptor is open, so a crashed holder frees it
automatically.

POSIX-only (Linux, macOS). Not compatible with NFS or distributed filesystems.
"""

from __future__ import annotations

import asyncio
import dataclasses
import fcntl
import os
import time
from pathlib import Path

_POLL_INTERVAL = 0.05


@dataclasses.dataclass
class FileLock:
    """
    Parameters
    ----------
    path : lock file (parent directory created if absent)
    """

    path: Path

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    async def try_acquire(self, timeout: float) -> bool:
        if self._fd is not None:
            return False
        fd = await asyncio.to_thread(self._sync_acquire, timeout)
        if fd is None:
            return False
        self._fd = fd
        return True

    async def release(self) -> None:
        fd, self._fd = self._fd, None
        if fd is not None:
            await asyncio.to_thread(self._sync_release, fd)

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _sync_acquire(self, timeout: float) -> int | None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fd
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    return None
                time.sleep(_POLL_INTERVAL)

    @staticmethod
    def _sync_release(fd: int) -> None:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
