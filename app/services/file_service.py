import logging
import re
import uuid
from typing import List, Tuple
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from app.models.file import File
from app.services import file_catalog
from app.services.minio_service import MinIOService, ObjectInfo

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_FILENAME_LENGTH = 255

_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,16}$")

def validate_mime_type(mime_type: str) -> None:
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("File type not allowed", fields={"mimeType": mime_type})

def validate_size(size: int) -> None:
    if size <= 0:
        raise ValidationError("File cannot be empty")
    if size > MAX_FILE_SIZE:
        raise ValidationError("File size exceeds 5MB limit")

def validate_filename(filename: str) -> str:
    name = (filename or "").strip()
    if not name:
        raise ValidationError("Filename is required")
    if len(name) > MAX_FILENAME_LENGTH:
        raise ValidationError("Filename is too long")
    return name

def build_object_name(owner_id: str, filename: str) -> str:
    """Storage key namespaced by owner: ``{owner_id}/{uuid}.{ext}``.

    The client's name only contributes its extension, and only when it is a
    short alphanumeric token.
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if not _EXTENSION_RE.match(ext):
        ext = "bin"
    return f"{owner_id}/{uuid.uuid4()}.{ext}"

class FileService:
    """File operations for one request, always scoped to the given owner."""

    def __init__(self, db: AsyncSession, storage: MinIOService):
        self.db = db
        self.storage = storage

    async def upload(self, content: bytes, filename: str, mime_type: str, owner_id: str) -> File:
        validate_mime_type(mime_type)
        validate_size(len(content))
        filename = validate_filename(filename)

        object_name = build_object_name(owner_id, filename)
        # Step 1: write the blob. StorageError propagates and no row is created.
        await run_in_threadpool(self.storage.upload_file, object_name, content, mime_type)

        # Step 2: catalog it, removing the blob again if that fails.
        try:
            db_file = await file_catalog.create(
                self.db, owner_id, filename, object_name, mime_type, len(content)
            )
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Saving metadata failed, rolling back upload of %s", object_name)
            await self._rollback_upload(object_name)
            raise DatabaseError("Failed to save file metadata") from exc
        logger.info("Stored file %s for user %s", db_file.id, owner_id)
        return db_file

    async def _rollback_upload(self, object_name: str) -> None:
        try:
            await run_in_threadpool(self.storage.delete_file, object_name)
        except Exception:
            # Best-effort: the blob stays orphaned, but the caller already has an error.
            logger.exception("Failed to rollback upload, orphaned object: %s", object_name)

    async def list(self, owner_id: str) -> Tuple[List[File], int]:
        files = await file_catalog.list_for_owner(self.db, owner_id)
        return files, len(files)

    async def _get_owned(self, file_id: str, owner_id: str) -> File:
        db_file = await file_catalog.get_for_owner(self.db, file_id, owner_id)
        if db_file is None:
            # Same answer for foreign and missing ids.
            raise NotFoundError("File not found")
        return db_file

    async def get_download_url(self, file_id: str, owner_id: str) -> str:
        db_file = await self._get_owned(file_id, owner_id)
        return await run_in_threadpool(self.storage.get_presigned_url, db_file.object_name)

    async def read(self, file_id: str, owner_id: str) -> Tuple[File, bytes]:
        db_file = await self._get_owned(file_id, owner_id)
        content = await run_in_threadpool(self.storage.download_file, db_file.object_name)
        return db_file, content

    async def delete(self, file_id: str, owner_id: str) -> None:
        db_file = await self._get_owned(file_id, owner_id)
        object_name = db_file.object_name
        # A failed blob delete aborts with StorageError and keeps the row, so a retry can finish the job.
        await run_in_threadpool(self.storage.delete_file, object_name)
        try:
            await file_catalog.delete(self.db, db_file)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Blob %s deleted but metadata removal failed", object_name)
            raise DatabaseError("Failed to delete file metadata") from exc
        logger.info("Deleted file %s for user %s", file_id, owner_id)

    @staticmethod
    def _check_stored_object(info: ObjectInfo, mime_type: str, size: int) -> None:
        validate_size(info.size)
        if info.size != size:
            raise ValidationError("Reported size does not match stored object", fields={"size": str(size)})
        stored_type = (info.content_type or "").split(";", 1)[0].strip().lower()
        if stored_type != mime_type:
            raise ValidationError(
                "Declared type does not match stored object", fields={"mimeType": mime_type}
            )

    # Presigned flow: the client PUTs bytes straight to storage, then reports back.

    async def get_upload_url(self, filename: str, mime_type: str, owner_id: str) -> Tuple[str, str]:
        validate_mime_type(mime_type)
        filename = validate_filename(filename)
        object_name = build_object_name(owner_id, filename)
        upload_url = await run_in_threadpool(self.storage.get_presigned_upload_url, object_name)
        return upload_url, object_name

    async def record_metadata(
        self, filename: str, mime_type: str, object_name: str, size: int, owner_id: str
    ) -> File:
        validate_mime_type(mime_type)
        filename = validate_filename(filename)
        if not object_name.startswith(f"{owner_id}/") or ".." in object_name:
            raise ValidationError("Invalid storage key", fields={"s3Key": object_name})
        if await file_catalog.exists_object_name(self.db, object_name):
            raise ConflictError("File metadata already recorded")

        # Don't take the client's word for it: the object must exist with the reported size and type.
        info = await run_in_threadpool(self.storage.stat_file, object_name)
        if info is None:
            raise ValidationError("Uploaded object not found in storage", fields={"s3Key": object_name})
        try:
            self._check_stored_object(info, mime_type, size)
        except ValidationError:
            # The blob is under the caller's prefix and will never be cataloged.
            await self._rollback_upload(object_name)
            raise

        try:
            db_file = await file_catalog.create(
                self.db, owner_id, filename, object_name, mime_type, size
            )
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError("File metadata already recorded") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise DatabaseError("Failed to save file metadata") from exc
        logger.info("Recorded presigned upload %s for user %s", db_file.id, owner_id)
        return db_file
