"""File storage for driver documents: local disk or S3."""

import asyncio
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from ecowheels.config import Settings, get_settings
from ecowheels.errors import InvalidInputError, StoreError
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)


class StorageHandle(BaseModel):
    """Reference to a stored object."""

    path: str
    size: int
    content_type: str | None = None


def normalize_path(path: str) -> str:
    """Validate a storage path and return it in canonical form."""
    parts = [part for part in PurePosixPath(path.strip("/")).parts if part not in ("", ".")]
    if not parts or ".." in parts:
        raise InvalidInputError(f"Invalid storage path: {path!r}")
    return "/".join(parts)


class FileStorage(Protocol):
    async def upload(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> StorageHandle: ...

    async def get_download_url(self, handle: StorageHandle) -> str: ...


class LocalFileStorage:
    """Stores files under a directory served at ``base_url``."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, path: str, data: bytes) -> None:
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)

    async def upload(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> StorageHandle:
        path = normalize_path(path)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            logger.error("file_upload_failed", path=path, error=str(e))
            raise StoreError("File upload failed") from e

        logger.info("file_uploaded", backend="local", path=path, size=len(data))
        return StorageHandle(path=path, size=len(data), content_type=content_type)

    async def get_download_url(self, handle: StorageHandle) -> str:
        return f"{self.base_url}/{quote(handle.path)}"


class S3FileStorage:
    """Stores files in an S3 bucket and hands out presigned URLs."""

    def __init__(self, bucket: str, url_expire_seconds: int = 3600, client=None):
        self.bucket = bucket
        self.url_expire_seconds = url_expire_seconds
        self.client = client or boto3.client("s3")

    async def upload(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> StorageHandle:
        path = normalize_path(path)
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await asyncio.to_thread(
                self.client.put_object, Bucket=self.bucket, Key=path, Body=data, **extra
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("file_upload_failed", backend="s3", path=path, error=str(e))
            raise StoreError("File upload failed") from e

        logger.info("file_uploaded", backend="s3", path=path, size=len(data))
        return StorageHandle(path=path, size=len(data), content_type=content_type)

    async def get_download_url(self, handle: StorageHandle) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": handle.path},
                ExpiresIn=self.url_expire_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreError("Could not create a download link") from e


def create_file_storage(settings: Settings | None = None) -> FileStorage:
    """Build the storage backend selected in settings."""
    settings = settings or get_settings()
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        return S3FileStorage(settings.s3_bucket, settings.s3_url_expire_seconds)
    return LocalFileStorage(settings.storage_root, settings.storage_base_url)
