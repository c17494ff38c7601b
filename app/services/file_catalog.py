"""Persistence for file metadata. Every read is scoped to the owning user."""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.file import File

async def create(
    db: AsyncSession,
    owner_id: str,
    filename: str,
    object_name: str,
    mime_type: str,
    size_bytes: int,
) -> File:
    db_file = File(
        user_id=owner_id,
        filename=filename,
        object_name=object_name,
        mime_type=mime_type,
        size_bytes=size_bytes,
    )
    db.add(db_file)
    await db.commit()
    await db.refresh(db_file)
    return db_file

async def list_for_owner(db: AsyncSession, owner_id: str) -> List[File]:
    result = await db.execute(
        select(File).where(File.user_id == owner_id).order_by(File.created_at.desc())
    )
    return list(result.scalars().all())

async def get_for_owner(db: AsyncSession, file_id: str, owner_id: str) -> Optional[File]:
    result = await db.execute(
        select(File).where(File.id == file_id, File.user_id == owner_id)
    )
    return result.scalar_one_or_none()

async def exists_object_name(db: AsyncSession, object_name: str) -> bool:
    found = await db.scalar(select(File.id).where(File.object_name == object_name))
    return found is not None

async def delete(db: AsyncSession, db_file: File) -> None:
    await db.delete(db_file)
    await db.commit()
