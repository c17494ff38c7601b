from fastapi import APIRouter, Depends, UploadFile, File as FileParam, status, Response
from sqlalchemy.ext.asyncio import AsyncSession
from urllib.parse import quote
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.core.security import get_current_user
from app.models.user import User
from app.services.file_service import FileService, MAX_FILE_SIZE
from app.services.minio_service import MinIOService, get_storage
from app.schemas.file import (
    DownloadUrlResponse,
    FileList,
    FileMetadataCreate,
    FileOut,
    UploadUrlRequest,
    UploadUrlResponse,
)

router = APIRouter(prefix="/files", tags=["File Management"])

def get_file_service(
    db: AsyncSession = Depends(get_db),
    storage: MinIOService = Depends(get_storage),
) -> FileService:
    return FileService(db, storage)

@router.get("", response_model=FileList)
async def list_files(
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    files, total = await service.list(current_user.id)
    return FileList(files=[FileOut.model_validate(f) for f in files], total=total)

@router.post("/upload", response_model=FileOut, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = FileParam(...),
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    if not file.content_type:
        raise ValidationError("Invalid file")
    # The part is already spooled; reading one byte past the limit caps what is loaded into memory.
    content = await file.read(MAX_FILE_SIZE + 1)
    db_file = await service.upload(content, file.filename or "", file.content_type, current_user.id)
    return FileOut.model_validate(db_file)

@router.post("/upload-url", response_model=UploadUrlResponse)
async def create_upload_url(
    body: UploadUrlRequest,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    upload_url, object_name = await service.get_upload_url(
        body.original_name, body.mime_type, current_user.id
    )
    return UploadUrlResponse(upload_url=upload_url, s3_key=object_name)

@router.post("/metadata", response_model=FileOut, status_code=status.HTTP_201_CREATED)
async def record_metadata(
    metadata: FileMetadataCreate,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    db_file = await service.record_metadata(
        metadata.original_name,
        metadata.mime_type,
        metadata.s3_key,
        metadata.size,
        current_user.id,
    )
    return FileOut.model_validate(db_file)

@router.get("/{file_id}/download", response_model=DownloadUrlResponse)
async def get_download_url(
    file_id: str,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    url = await service.get_download_url(file_id, current_user.id)
    return DownloadUrlResponse(download_url=url)

@router.get("/{file_id}/content", response_class=Response)
async def download_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    db_file, content = await service.read(file_id, current_user.id)
    return Response(
        content=content,
        media_type=db_file.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(db_file.filename)}"},
    )

@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service),
):
    await service.delete(file_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
