"""
Avatar storage.

``LocalStorageProvider`` writes under ``LOCAL_UPLOAD_DIR`` (served by the app
as static files); ``S3StorageProvider`` uploads to a bucket with boto3,
running the blocking client in a worker thread.
"""
import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.exceptions import InternalError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp"}
)
_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass(frozen=True)
class StoredObject:
    url: str
    key: str


class StorageProvider(Protocol):
    async def upload(
        self, content: bytes, filename: str, content_type: str, folder: str
    ) -> StoredObject: ...

    async def delete(self, key: str) -> None: ...

    def key_for_url(self, url: str) -> str | None: ...


def validate_image(content: bytes, content_type: str | None, max_bytes: int) -> None:
    if not content:
        raise ValidationError("Uploaded file is empty", code="EMPTY_FILE")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Only JPEG, PNG and WebP images are allowed", code="INVALID_FILE_TYPE"
        )
    if len(content) > max_bytes:
        raise ValidationError(
            f"File exceeds the maximum size of {max_bytes // (1024 * 1024)} MB",
            code="FILE_TOO_LARGE",
        )


def build_object_key(folder: str, filename: str, content_type: str) -> str:
    """Return ``{folder}/{safe-stem}-{random}{ext}``; the original name is never trusted."""
    stem = _UNSAFE_CHARS_RE.sub("-", Path(filename or "upload").stem).strip("-")[:50] or "upload"
    safe_folder = _UNSAFE_CHARS_RE.sub("-", folder).strip("-") or "misc"
    return f"{safe_folder}/{stem}-{uuid.uuid4().hex[:12]}{_EXTENSIONS.get(content_type, '')}"


class LocalStorageProvider:
    def __init__(self, base_dir: str, public_base_url: str) -> None:
        self._base_dir = Path(base_dir).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self._base_dir / key).resolve()
        if self._base_dir not in path.parents:
            raise ValidationError("Invalid storage key", code="INVALID_STORAGE_KEY")
        return path

    async def upload(
        self, content: bytes, filename: str, content_type: str, folder: str
    ) -> StoredObject:
        key = build_object_key(folder, filename, content_type)
        path = self._path_for(key)
        await asyncio.to_thread(self._write, path, content)
        logger.info("Stored upload locally: %s", key)
        return StoredObject(url=f"{self._public_base_url}/{key}", key=key)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)

    def key_for_url(self, url: str) -> str | None:
        prefix = f"{self._public_base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else None


class S3StorageProvider:
    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ) -> None:
        # boto3 falls back to its own credential chain when keys are None.
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )
        self._bucket = bucket
        self._public_base_url = (
            public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com"
        ).rstrip("/")

    async def upload(
        self, content: bytes, filename: str, content_type: str, folder: str
    ) -> StoredObject:
        key = build_object_key(folder, filename, content_type)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 upload failed for %s: %s", key, exc)
            raise InternalError("File upload failed", code="UPLOAD_FAILED") from exc
        logger.info("Stored upload in S3: %s", key)
        return StoredObject(url=f"{self._public_base_url}/{key}", key=key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)

    def key_for_url(self, url: str) -> str | None:
        prefix = f"{self._public_base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else None


def create_storage_provider(settings) -> StorageProvider:
    if settings.STORAGE_PROVIDER == "s3":
        if not settings.AWS_BUCKET_NAME:
            raise ValueError("AWS_BUCKET_NAME is required when STORAGE_PROVIDER=s3")
        return S3StorageProvider(
            bucket=settings.AWS_BUCKET_NAME,
            region=settings.AWS_REGION,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
        )
    if settings.STORAGE_PROVIDER == "local":
        return LocalStorageProvider(
            settings.LOCAL_UPLOAD_DIR,
            f"{settings.APP_URL.rstrip('/')}{settings.LOCAL_URL_PREFIX}",
        )
    raise ValueError(f"Unknown STORAGE_PROVIDER: {settings.STORAGE_PROVIDER!r}")
