# tender/services/storage_service.py
"""
Blob storage for uploaded documents.

Rows only hold an opaque locator string; the bytes live here.
  local://<key>          file under LOCAL_STORAGE_DIR
  s3://<bucket>/<key>    object in S3
"""
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tender.core.config import settings
from tender.core.logger import logger
from tender.utils.exceptions import StorageError

LOCAL_SCHEME = "local://"
S3_SCHEME = "s3://"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    name = Path(file_name or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name[:200] or "document"


def build_document_key(case_id, file_name: str) -> str:
    """cases/<case_id>/documents/<timestamp>_<safe_name>"""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    return f"cases/{case_id}/documents/{stamp}_{safe_file_name(file_name)}"


class StorageService(Protocol):
    def put_object(self, key: str, data: bytes, content_type: str) -> str: ...

    def get_object(self, locator: str) -> bytes: ...

    def delete_object(self, locator: str) -> None: ...


class LocalStorageService:
    """Filesystem-backed store for development and tests."""

    def __init__(self, base_dir: str = None):
        self.base_dir = Path(base_dir or settings.LOCAL_STORAGE_DIR).resolve()

    def _path_for(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def _key_from_locator(self, locator: str) -> str:
        if not locator.startswith(LOCAL_SCHEME):
            raise StorageError(f"Not a local locator: {locator}")
        return locator[len(LOCAL_SCHEME):]

    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Local storage write failed for %s: %s", key, e)
            raise StorageError(str(e))
        logger.info("Stored %d bytes at %s", len(data), key)
        return f"{LOCAL_SCHEME}{key}"

    def get_object(self, locator: str) -> bytes:
        path = self._path_for(self._key_from_locator(locator))
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error("Local storage read failed for %s: %s", locator, e)
            raise StorageError(str(e))

    def delete_object(self, locator: str) -> None:
        path = self._path_for(self._key_from_locator(locator))
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Local storage delete failed for %s: %s", locator, e)
            raise StorageError(str(e))
        logger.info("Deleted %s", locator)


class S3Service:
    """
    Service layer for AWS S3 operations.
    """

    def __init__(self, s3_client=None, bucket: str = None):
        self.s3_client = s3_client or boto3.client(
            "s3",
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        )
        self.bucket = bucket or settings.S3_BUCKET_NAME

    @staticmethod
    def parse_locator(locator: str) -> Tuple[str, str]:
        if not locator.startswith(S3_SCHEME):
            raise StorageError(f"Not an S3 locator: {locator}")
        bucket, _, key = locator[len(S3_SCHEME):].partition("/")
        if not bucket or not key:
            raise StorageError(f"Malformed S3 locator: {locator}")
        return bucket, key

    def put_object(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
                ServerSideEncryption="AES256",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {key} to S3: {str(e)}")
            raise StorageError(str(e))

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return f"{S3_SCHEME}{self.bucket}/{key}"

    def get_object(self, locator: str) -> bytes:
        bucket, key = self.parse_locator(locator)
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to download {locator}: {str(e)}")
            raise StorageError(str(e))

    def delete_object(self, locator: str) -> None:
        bucket, key = self.parse_locator(locator)
        try:
            self.s3_client.delete_object(Bucket=bucket, Key=key)
            logger.info(f"Deleted S3 object: {locator}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete S3 object: {str(e)}")
            raise StorageError(str(e))


_storage_service = None


def get_storage_service() -> StorageService:
    """Process-wide store selected by STORAGE_BACKEND."""
    global _storage_service
    if _storage_service is None:
        backend = settings.STORAGE_BACKEND.strip().lower()
        if backend == "s3":
            _storage_service = S3Service()
        elif backend == "local":
            _storage_service = LocalStorageService()
        else:
            raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND!r}")
        logger.info("Blob storage backend: %s", backend)
    return _storage_service
