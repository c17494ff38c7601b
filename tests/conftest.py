"""Shared fixtures: in-memory database, fake object store and an HTTP client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.exceptions import StorageError
from app.main import app
from app.services.minio_service import ObjectInfo, get_storage


class FakeStorage:
    """In-memory stand-in for MinIOService."""

    bucket = "test-bucket"

    def __init__(self):
        self.objects = {}
        self.fail_upload = False
        self.fail_delete = False
        self.deleted = []

    def upload_file(self, object_name, file_content, content_type):
        if self.fail_upload:
            raise StorageError("Failed to upload file to storage")
        self.objects[object_name] = (file_content, content_type)
        return object_name

    def download_file(self, object_name):
        if object_name not in self.objects:
            raise StorageError("Failed to read file from storage")
        return self.objects[object_name][0]

    def stat_file(self, object_name):
        if object_name not in self.objects:
            return None
        content, content_type = self.objects[object_name]
        return ObjectInfo(object_name=object_name, size=len(content), content_type=content_type)

    def delete_file(self, object_name):
        if self.fail_delete:
            raise StorageError("Failed to delete file from storage")
        self.objects.pop(object_name, None)
        self.deleted.append(object_name)

    def get_presigned_url(self, object_name, expires=3600):
        return f"http://storage.test/{self.bucket}/{object_name}?X-Amz-Expires={expires}"

    def get_presigned_upload_url(self, object_name, expires=3600):
        return f"http://storage.test/{self.bucket}/{object_name}?X-Amz-Expires={expires}&put=1"


@pytest.fixture
async def engine():
    """Fresh in-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
async def client(session_factory, storage):
    """HTTP client bound to the app, with database and storage swapped for test doubles."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
