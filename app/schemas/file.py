from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, List
from datetime import datetime

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class FileOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    filename: str
    mime_type: str
    size: int = Field(validation_alias="size_bytes")
    created_at: datetime
    updated_at: datetime

class FileList(CamelModel):
    files: List[FileOut]
    total: int

class UploadUrlRequest(CamelModel):
    original_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1)

class UploadUrlResponse(CamelModel):
    upload_url: str
    fields: Dict[str, str] = Field(default_factory=dict)
    s3_key: str

class FileMetadataCreate(CamelModel):
    original_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1)
    s3_key: str = Field(..., min_length=1, max_length=512)
    size: int = Field(..., ge=0)

class DownloadUrlResponse(CamelModel):
    download_url: str
