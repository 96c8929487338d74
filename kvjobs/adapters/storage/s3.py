"""
S3KeyValueStorage — AWS S3 adapter using aioboto3, one object per key.

Install extras: pip install "kvjobs[s3]"

Layout
------
Every key is stored as the object ``<namespace>/<key>``. Listing uses
ListObjectsV2 with the namespaced prefix and follows continuation tokens.

Compatible with S3-compatible storage: MinIO, Cloudflare R2, Tigris, etc.
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from kvjobs.domain.errors import StorageError, ValueTooLargeError

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session


@dataclasses.dataclass
class S3KeyValueStorage:
    """
    AWS S3 storage adapter.

    Parameters
    ----------
    bucket          : S3 bucket name
    namespace       : key prefix inside the bucket (e.g. "bots/inventory/jobs")
    session         : aioboto3.Session — created lazily from env vars if omitted
    region_name     : AWS region passed to the S3 client
    endpoint_url    : custom endpoint for S3-compatible backends (e.g. MinIO)
    max_value_bytes : per-value ceiling, or None for unlimited
    """

    bucket: str
    namespace: str = "kvjobs"
    session: AioBoto3Session | None = None
    region_name: str | None = None
    endpoint_url: str | None = None
    max_value_bytes: int | None = None

    def _get_session(self) -> AioBoto3Session:
        if self.session is not None:
            return self.session
        try:
            import aioboto3  # type: ignore[import-untyped]
        except ImportError as exc:
            raise ImportError(
                "S3KeyValueStorage requires aioboto3. Install with: pip install 'kvjobs[s3]'"
            ) from exc
        return aioboto3.Session()  # type: ignore[return-value]

    def _client_kwargs(self) -> dict[str, str]:
        """Build kwargs forwarded to the S3 client constructor."""
        kwargs: dict[str, str] = {}
        if self.region_name:
            kwargs["region_name"] = self.region_name
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return kwargs

    def _object_key(self, key: str) -> str:
        return f"{self.namespace.rstrip('/')}/{key}"

    async def get(self, key: str) -> bytes | None:
        """Read one object. Returns None if it does not exist."""
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                try:
                    response = await s3.get_object(Bucket=self.bucket, Key=self._object_key(key))
                    content: bytes = await response["Body"].read()
                    return content
                except Exception as exc:
                    if _s3_error_code(exc) in ("NoSuchKey", "404"):
                        return None
                    raise
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError("S3 read failed", exc) from exc

    async def put(self, key: str, value: bytes) -> None:
        if self.max_value_bytes is not None and len(value) > self.max_value_bytes:
            raise ValueTooLargeError(key, len(value), self.max_value_bytes)
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=self._object_key(key),
                    Body=value,
                    ContentType="application/json",
                )
        except Exception as exc:
            raise StorageError("S3 write failed", exc) from exc

    async def delete(self, key: str) -> None:
        session = self._get_session()
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                await s3.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except Exception as exc:
            raise StorageError("S3 delete failed", exc) from exc

    async def keys(self, prefix: str = "") -> list[str]:
        session = self._get_session()
        base = self._object_key("")
        found: list[str] = []
        try:
            async with session.client("s3", **self._client_kwargs()) as s3:  # type: ignore[attr-defined]
                kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": base + prefix}
                while True:
                    response = await s3.list_objects_v2(**kwargs)
                    for obj in response.get("Contents", []):
                        found.append(obj["Key"][len(base):])
                    if not response.get("IsTruncated"):
                        break
                    kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except Exception as exc:
            raise StorageError("S3 list failed", exc) from exc
        return found


def _s3_error_code(exc: Exception) -> str:
    """Extract the error code from a botocore ClientError, or return ''."""
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        error = response.get("Error", {})
        if isinstance(error, dict):
            code = error.get("Code", "")
            return str(code) if code else ""
    return ""
