from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError
import io
import logging
from dataclasses import dataclass
from functools import lru_cache
from app.core.config import Settings, settings as default_settings
from app.core.exceptions import StorageError
from typing import Optional
from datetime import timedelta

logger = logging.getLogger(__name__)

PRESIGNED_URL_EXPIRES = 3600

@dataclass
class ObjectInfo:
    object_name: str
    size: int
    content_type: Optional[str] = None

class MinIOService:
    """Gateway to the bucket holding file contents.

    Built from explicit settings; the app gets one through ``get_storage``.
    """

    def __init__(self, settings: Settings, client: Optional[Minio] = None, presign_client: Optional[Minio] = None):
        # Internal client for operations within Docker network
        self.client = client or Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
            region=settings.MINIO_REGION,  # Explicit region to avoid lookup
        )
        # Presign client uses public endpoint so signatures match browser requests.
        # Region must be set to avoid network calls (presign is local-only operation)
        presign_endpoint = settings.MINIO_PUBLIC_ENDPOINT or settings.MINIO_ENDPOINT
        self.presign_client = presign_client or Minio(
            presign_endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
            region=settings.MINIO_REGION,
        )
        self.bucket = settings.MINIO_BUCKET

    def ensure_bucket(self):
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info("Created bucket %s", self.bucket)
        except (S3Error, HTTPError) as exc:
            logger.warning("MinIO bucket check failed: %s", exc)

    def upload_file(self, object_name: str, file_content: bytes, content_type: str) -> str:
        logger.info("Uploading object %s (%d bytes)", object_name, len(file_content))
        try:
            self.client.put_object(
                self.bucket, object_name, io.BytesIO(file_content),
                length=len(file_content),
                content_type=content_type,
            )
        except (S3Error, HTTPError) as exc:
            logger.exception("Failed to upload object %s", object_name)
            raise StorageError("Failed to upload file to storage") from exc
        return object_name

    def download_file(self, object_name: str) -> bytes:
        response = None
        try:
            response = self.client.get_object(self.bucket, object_name)
            return response.read()
        except (S3Error, HTTPError) as exc:
            logger.exception("Failed to read object %s", object_name)
            raise StorageError("Failed to read file from storage") from exc
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def stat_file(self, object_name: str) -> Optional[ObjectInfo]:
        """Return size and type of a stored object, or None when it does not exist."""
        try:
            stat = self.client.stat_object(self.bucket, object_name)
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchObject", "ResourceNotFound"):
                return None
            raise StorageError("Failed to inspect file in storage") from exc
        except HTTPError as exc:
            raise StorageError("Failed to inspect file in storage") from exc
        return ObjectInfo(object_name=object_name, size=stat.size, content_type=stat.content_type)

    def delete_file(self, object_name: str):
        logger.info("Deleting object %s", object_name)
        try:
            self.client.remove_object(self.bucket, object_name)
        except (S3Error, HTTPError) as exc:
            logger.exception("Failed to delete object %s", object_name)
            raise StorageError("Failed to delete file from storage") from exc

    def get_presigned_url(self, object_name: str, expires: int = PRESIGNED_URL_EXPIRES) -> str:
        # MinIO expects a timedelta for expires; accept int seconds for convenience.
        exp = timedelta(seconds=expires) if isinstance(expires, int) else expires
        try:
            return self.presign_client.presigned_get_object(self.bucket, object_name, expires=exp)
        except (S3Error, HTTPError) as exc:
            raise StorageError("Failed to create download URL") from exc

    def get_presigned_upload_url(self, object_name: str, expires: int = PRESIGNED_URL_EXPIRES) -> str:
        exp = timedelta(seconds=expires) if isinstance(expires, int) else expires
        try:
            return self.presign_client.presigned_put_object(self.bucket, object_name, expires=exp)
        except (S3Error, HTTPError) as exc:
            raise StorageError("Failed to create upload URL") from exc

@lru_cache
def get_storage() -> MinIOService:
    storage = MinIOService(default_settings)
    storage.ensure_bucket()
    return storage
