"""
Storage Abstraction Layer - The Bridge Pattern

Provides a bucket-aware interface for object storage with LocalStorage
(development, one directory per bucket) and SupabaseStorage (production,
Storage REST API over httpx).
"""

import asyncio
import mimetypes
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import urlparse, unquote

import httpx

from banner_studio.core.config import settings
from banner_studio.core.exceptions import StorageError, BucketNotFoundError, ValidationError
from banner_studio.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class UploadedFile:
    """File received from a client, detached from the request."""
    filename: str
    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        suffix = PurePosixPath(self.filename or "").suffix.lower()
        if suffix:
            return suffix
        return mimetypes.guess_extension(self.content_type or "") or ".png"


def generate_object_path(folder: str, extension: str) -> str:
    """'{folder}/{epoch_ms}-{random}{ext}', unique enough for concurrent uploads."""
    if extension and not extension.startswith("."):
        extension = "." + extension
    return f"{folder}/{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"


def _clean_path(path: str) -> str:
    """Normalize an object path and refuse traversal outside the bucket."""
    cleaned = PurePosixPath(path.lstrip("/"))
    if not path or ".." in cleaned.parts:
        raise ValidationError(f"Invalid storage path: {path!r}")
    return str(cleaned)


def _check_bucket(bucket: str) -> str:
    """A bucket is a single path segment."""
    if not bucket or bucket in (".", "..") or "/" in bucket or "\\" in bucket:
        raise ValidationError(f"Invalid bucket name: {bucket!r}")
    return bucket


class IStorage(ABC):
    """Interface for storage operations - The Bridge"""

    @abstractmethod
    async def upload(
        self,
        file_data: bytes,
        path: str,
        bucket: str,
        content_type: str = "image/png",
        upsert: bool = True
    ) -> str:
        """
        Upload a file and return its object path inside the bucket.

        Args:
            file_data: Raw bytes of the file
            path: Object path inside the bucket (e.g. "logos/123-abc.png")
            bucket: Destination bucket name
            content_type: MIME type of the file
            upsert: Overwrite an existing object at the same path

        Raises:
            BucketNotFoundError: The bucket does not exist
            StorageError: Any other storage failure
        """
        pass

    @abstractmethod
    def get_public_url(self, path: str, bucket: str) -> str:
        """Get the public URL for an object."""
        pass

    @abstractmethod
    async def delete(self, path: str, bucket: str) -> bool:
        """
        Delete an object.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def exists(self, path: str, bucket: str) -> bool:
        """Check if an object exists."""
        pass

    def path_from_url(self, url: str, bucket: str) -> Optional[str]:
        """
        Recover an object path from one of this storage's public URLs.

        Returns None when the URL does not point into the bucket.
        """
        marker = f"/{bucket}/"
        url_path = unquote(urlparse(url).path)
        if marker not in url_path:
            return None
        return url_path.split(marker, 1)[1] or None


class LocalStorage(IStorage):
    """Local filesystem storage implementation for development."""

    def __init__(self, base_path: str = "./data/storage", buckets: Optional[list] = None):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        for bucket in buckets or []:
            (self.base_path / bucket).mkdir(parents=True, exist_ok=True)

    def _bucket_dir(self, bucket: str) -> Path:
        bucket_dir = self.base_path / _check_bucket(bucket)
        if not bucket_dir.is_dir():
            raise BucketNotFoundError(bucket)
        return bucket_dir

    async def upload(
        self,
        file_data: bytes,
        path: str,
        bucket: str,
        content_type: str = "image/png",
        upsert: bool = True
    ) -> str:
        key = _clean_path(path)
        file_path = self._bucket_dir(bucket) / key

        if file_path.exists() and not upsert:
            raise StorageError(f"Object already exists: {bucket}/{key}", code=409)

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(file_path.write_bytes, file_data)
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{key}: {e}") from e

        logger.debug("storage_uploaded", bucket=bucket, path=key, size=len(file_data))
        return key

    def get_public_url(self, path: str, bucket: str) -> str:
        """For local storage, return the URL of the mounted static directory."""
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/static/storage/{_check_bucket(bucket)}/{_clean_path(path)}"

    async def delete(self, path: str, bucket: str) -> bool:
        file_path = self._bucket_dir(bucket) / _clean_path(path)
        if not file_path.exists():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {bucket}/{path}: {e}") from e
        return True

    async def exists(self, path: str, bucket: str) -> bool:
        return (self._bucket_dir(bucket) / _clean_path(path)).exists()


class SupabaseStorage(IStorage):
    """Supabase Storage implementation using its REST API."""

    def __init__(self, url: str, service_key: str, timeout: float = 60.0):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _raise_for_response(self, response: httpx.Response, bucket: str, action: str):
        if response.is_success:
            return
        text = response.text
        if "bucket not found" in text.lower():
            raise BucketNotFoundError(bucket)
        raise StorageError(
            f"Supabase {action} failed with status {response.status_code}",
            details={"bucket": bucket, "body": text[:500]}
        )

    async def upload(
        self,
        file_data: bytes,
        path: str,
        bucket: str,
        content_type: str = "image/png",
        upsert: bool = True
    ) -> str:
        key = _clean_path(path)
        headers = {
            **self.headers,
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
            "cache-control": "3600",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.url}/storage/v1/object/{_check_bucket(bucket)}/{key}",
                    content=file_data,
                    headers=headers
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Supabase upload failed: {e}") from e

        self._raise_for_response(response, bucket, "upload")
        return key

    def get_public_url(self, path: str, bucket: str) -> str:
        return f"{self.url}/storage/v1/object/public/{_check_bucket(bucket)}/{_clean_path(path)}"

    async def delete(self, path: str, bucket: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    "DELETE",
                    f"{self.url}/storage/v1/object/{_check_bucket(bucket)}",
                    json={"prefixes": [_clean_path(path)]},
                    headers=self.headers
                )
        except httpx.HTTPError as e:
            raise StorageError(f"Supabase delete failed: {e}") from e

        self._raise_for_response(response, bucket, "delete")
        return bool(response.json())

    async def exists(self, path: str, bucket: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.head(self.get_public_url(path, bucket))
        except httpx.HTTPError as e:
            raise StorageError(f"Supabase exists check failed: {e}") from e
        return response.status_code == 200


class StorageFactory:
    """
    Factory for creating storage instances.

    Local storage is used unless both SUPABASE_URL and SUPABASE_SERVICE_KEY
    are set.
    """

    _instance: Optional[IStorage] = None

    @classmethod
    def get_storage(cls) -> IStorage:
        """Get the appropriate storage implementation based on environment."""
        if cls._instance is None:
            if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY:
                cls._instance = SupabaseStorage(
                    url=settings.SUPABASE_URL,
                    service_key=settings.SUPABASE_SERVICE_KEY,
                    timeout=settings.HTTP_TIMEOUT_SECONDS
                )
                logger.info("storage_backend_selected", backend="supabase")
            else:
                cls._instance = LocalStorage(
                    base_path=settings.LOCAL_STORAGE_PATH,
                    buckets=settings.STORAGE_BUCKETS
                )
                logger.info("storage_backend_selected", backend="local")

        return cls._instance

    @classmethod
    def reset(cls):
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None


# Convenience function for dependency injection
def get_storage() -> IStorage:
    """Get the storage instance - ready for FastAPI Depends()."""
    return StorageFactory.get_storage()
