"""
Object storage for location images: Supabase Storage and an in-memory double.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urlsplit

from fastapi.concurrency import run_in_threadpool
from supabase import Client, create_client

from heritage_admin.core.errors import StorageError


def location_image_path(location_id: str, object_name: str) -> str:
    return f"locations/{location_id}/{object_name}"


class ObjectStorage(Protocol):
    """Defines the operations the API needs from object storage."""

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at path and return the public URL."""
        ...

    async def remove(self, paths: list[str]) -> None:
        ...

    def path_from_url(self, url: str) -> Optional[str]:
        ...


def _public_prefix(base_url: str, bucket: str) -> str:
    return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/"


@dataclass
class InMemoryObjectStorage:
    """Test double for storage interactions."""

    base_url: str = "https://example.test"
    bucket: str = "location-images"
    stored_objects: dict = field(default_factory=dict)
    fail_remove: Optional[str] = None

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if path in self.stored_objects:
            raise StorageError("The resource already exists")
        self.stored_objects[path] = (data, content_type)
        return _public_prefix(self.base_url, self.bucket) + path

    async def remove(self, paths: list[str]) -> None:
        if self.fail_remove:
            raise StorageError(self.fail_remove)
        for p in paths:
            self.stored_objects.pop(p, None)

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = _public_prefix(self.base_url, self.bucket)
        if not url.startswith(prefix):
            return None
        return url[len(prefix):].split("?", 1)[0] or None


class SupabaseObjectStorage:
    """Supabase Storage bucket (public read, service-role writes)."""

    def __init__(self, url: str, service_role_key: str, bucket: str):
        self._url = url
        self._service_role_key = service_role_key
        self.bucket = bucket
        self._client: Optional[Client] = None

    def _bucket(self):
        if self._client is None:
            self._client = create_client(self._url, self._service_role_key)
        return self._client.storage.from_(self.bucket)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        bucket = self._bucket()
        try:
            await run_in_threadpool(
                bucket.upload,
                path,
                data,
                {"content-type": content_type, "upsert": "false"},
            )
            public_url = await run_in_threadpool(bucket.get_public_url, path)
        except Exception as exc:
            raise StorageError(str(exc)) from exc
        # the SDK appends a bare "?" on some versions
        return public_url.rstrip("?")

    async def remove(self, paths: list[str]) -> None:
        if not paths:
            return
        try:
            await run_in_threadpool(self._bucket().remove, paths)
        except Exception as exc:
            raise StorageError(str(exc)) from exc

    def path_from_url(self, url: str) -> Optional[str]:
        marker = f"/storage/v1/object/public/{self.bucket}/"
        path = urlsplit(url).path
        if marker not in path:
            return None
        return path.split(marker, 1)[1] or None
