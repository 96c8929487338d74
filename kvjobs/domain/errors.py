"""
Exception hierarchy for kvjobs.

KVJobsError
├── StorageError              — underlying I/O failure (wraps original exception)
│   └── ValueTooLargeError    — value exceeds the store's per-value ceiling
├── JobDecodeError            — stored payload is not a valid Job
├── CheckpointError
│   ├── CheckpointExpiredError — checkpoint missing, expired or corrupt
│   └── CheckpointWriteError   — checkpoint could not be saved
└── DeadLetterNotFoundError   — dead-letter key not present
"""

from __future__ import annotations


class KVJobsError(Exception):
    """Base class for all kvjobs exceptions."""


class StorageError(KVJobsError):
    """
    Wraps an underlying I/O failure from a storage adapter.

    Attributes
    ----------
    cause : Exception | None
        The original exception from the storage backend, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        if cause is None:
            super().__init__(message)
        else:
            super().__init__(f"{message}: {cause}")


class ValueTooLargeError(StorageError):
    """Raised when a value is larger than the backend accepts for one entry."""

    def __init__(self, key: str, size: int, limit: int) -> None:
        self.key = key
        self.size = size
        self.limit = limit
        super().__init__(f"Value for {key!r} is {size} bytes, limit is {limit}")


class JobDecodeError(KVJobsError):
    """Raised when a stored job payload cannot be parsed into a Job."""

    def __init__(self, key: str, cause: Exception) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Job {key!r} has an invalid payload: {cause}")


class CheckpointError(KVJobsError):
    """Base class for stage checkpoint failures."""

    def __init__(self, prefix: str, message: str) -> None:
        self.prefix = prefix
        super().__init__(message)


class CheckpointExpiredError(CheckpointError):
    """
    Raised when a stage needs a checkpoint that is absent.

    Expiry, eviction of a single chunk and a corrupt payload all look the same
    to the caller: the stage cannot continue on partial data.
    """

    def __init__(self, prefix: str) -> None:
        super().__init__(prefix, f"Checkpoint {prefix!r} is stale or corrupt")


class CheckpointWriteError(CheckpointError):
    """Raised when a stage could not persist one of its checkpoints."""

    def __init__(self, prefix: str) -> None:
        super().__init__(prefix, f"Checkpoint {prefix!r} could not be saved")


class DeadLetterNotFoundError(KVJobsError):
    """Raised when a dead-letter key is not present in the job store."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Dead letter {key!r} not found")
