"""
GCSKeyValueStorage — Google Cloud Storage adapter, one blob per key.

Install extras: pip install "kvjobs[gcs]"

Every key is stored as the blob ``<namespace>/<key>``; listing uses
``list_blobs(prefix=...)``.

Note: google-cloud-storage is synchronous. All operations are wrapped in
asyncio.to_thread to avoid blocking the event loop.
"""
from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING

from kvjobs.domain.errors import StorageError, ValueTooLargeError

if TYPE_CHECKING:
    from google.cloud.storage import Client as GCSClient


def _not_found_error() -> type[Exception]:
    try:
        from google.api_core import exceptions as gapi_exc  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError(
            "GCSKeyValueStorage requires google-cloud-storage. "
            "Install with: pip install 'kvjobs[gcs]'"
        ) from exc
    return gapi_exc.NotFound


@dataclasses.dataclass
class GCSKeyValueStorage:
    """
    Google Cloud Storage adapter.

    Parameters
    ----------
    bucket_name     : GCS bucket name
    namespace       : blob name prefix (e.g. "bots/inventory/jobs")
    client          : google.cloud.storage.Client — created lazily if omitted
    max_value_bytes : per-value ceiling, or None for unlimited
    """

    bucket_name: str
    namespace: str = "kvjobs"
    client: GCSClient | None = None
    max_value_bytes: int | None = None

    def _get_client(self) -> GCSClient:
        if self.client is not None:
            return self.client
        try:
            from google.cloud import storage  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "GCSKeyValueStorage requires google-cloud-storage. "
                "Install with: pip install 'kvjobs[gcs]'"
            ) from exc
        self.client = storage.Client()  # type: ignore[assignment]
        return self.client  # type: ignore[return-value]

    def _blob_name(self, key: str) -> str:
        return f"{self.namespace.rstrip('/')}/{key}"

    async def get(self, key: str) -> bytes | None:
        try:
            return await asyncio.to_thread(self._sync_get, key)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError("GCS read failed", exc) from exc

    async def put(self, key: str, value: bytes) -> None:
        if self.max_value_bytes is not None and len(value) > self.max_value_bytes:
            raise ValueTooLargeError(key, len(value), self.max_value_bytes)
        try:
            await asyncio.to_thread(self._sync_put, key, value)
        except Exception as exc:
            raise StorageError("GCS write failed", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._sync_delete, key)
        except Exception as exc:
            raise StorageError("GCS delete failed", exc) from exc

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            return await asyncio.to_thread(self._sync_keys, prefix)
        except Exception as exc:
            raise StorageError("GCS list failed", exc) from exc

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    def _sync_get(self, key: str) -> bytes | None:
        not_found = _not_found_error()
        blob = self._get_client().bucket(self.bucket_name).blob(self._blob_name(key))  # type: ignore[attr-defined]
        try:
            content: bytes = blob.download_as_bytes()
            return content
        except not_found:
            return None

    def _sync_put(self, key: str, value: bytes) -> None:
        blob = self._get_client().bucket(self.bucket_name).blob(self._blob_name(key))  # type: ignore[attr-defined]
        blob.upload_from_string(value, content_type="application/json")  # type: ignore[attr-defined]

    def _sync_delete(self, key: str) -> None:
        not_found = _not_found_error()
        blob = self._get_client().bucket(self.bucket_name).blob(self._blob_name(key))  # type: ignore[attr-defined]
        try:
            blob.delete()  # type: ignore[attr-defined]
        except not_found:
            pass

    def _sync_keys(self, prefix: str) -> list[str]:
        base = self._blob_name("")
        blobs = self._get_client().list_blobs(self.bucket_name, prefix=base + prefix)  # type: ignore[attr-defined]
        return [blob.name[len(base):] for blob in blobs]
