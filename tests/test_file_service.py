"""Tests for file operations business logic."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.models.file import File
from app.services import file_catalog, user_service
from app.services.file_service import (
    MAX_FILE_SIZE,
    FileService,
    build_object_name,
)


@pytest.fixture
async def owner(db):
    return await user_service.create(db, "alice@example.com", "hash")


@pytest.fixture
async def other_owner(db):
    return await user_service.create(db, "bob@example.com", "hash")


@pytest.fixture
def service(db, storage):
    return FileService(db, storage)


async def _count_files(db):
    result = await db.execute(select(File))
    return len(result.scalars().all())


def test_object_name_is_namespaced_by_owner():
    key = build_object_name("owner-1", "Report.PDF")

    owner, name = key.split("/")
    assert owner == "owner-1"
    assert name.endswith(".pdf")
    assert build_object_name("owner-1", "Report.PDF") != key


@pytest.mark.parametrize("filename", ["README", "weird.???", "../../etc/passwd"])
def test_object_name_ignores_unsafe_extensions(filename):
    key = build_object_name("owner-1", filename)

    assert key.startswith("owner-1/")
    assert key.count("/") == 1
    assert key.endswith(".bin")


async def test_upload_success(service, storage, owner):
    """Blob lands under the owner's prefix and a row references it."""
    db_file = await service.upload(b"0123456789", "note.txt", "text/plain", owner.id)

    assert db_file.filename == "note.txt"
    assert db_file.size_bytes == 10
    assert db_file.mime_type == "text/plain"
    assert db_file.user_id == owner.id
    assert db_file.object_name.startswith(f"{owner.id}/")
    assert storage.objects[db_file.object_name] == (b"0123456789", "text/plain")


async def test_upload_rejects_disallowed_type(service, storage, owner, db):
    with pytest.raises(ValidationError):
        await service.upload(b"MZ...", "tool.exe", "application/x-msdownload", owner.id)

    assert storage.objects == {}
    assert await _count_files(db) == 0


@pytest.mark.parametrize("size", [0, MAX_FILE_SIZE + 1])
async def test_upload_rejects_bad_size(service, storage, owner, db, size):
    with pytest.raises(ValidationError):
        await service.upload(b"x" * size, "note.txt", "text/plain", owner.id)

    assert storage.objects == {}
    assert await _count_files(db) == 0


async def test_upload_accepts_exact_limit(service, owner):
    db_file = await service.upload(b"x" * MAX_FILE_SIZE, "big.txt", "text/plain", owner.id)

    assert db_file.size_bytes == MAX_FILE_SIZE


async def test_upload_rejects_blank_filename(service, owner):
    with pytest.raises(ValidationError):
        await service.upload(b"data", "   ", "text/plain", owner.id)


async def test_upload_storage_failure_creates_no_row(service, storage, owner, db):
    storage.fail_upload = True

    with pytest.raises(StorageError):
        await service.upload(b"data", "note.txt", "text/plain", owner.id)

    assert await _count_files(db) == 0


async def test_upload_database_failure_removes_blob(service, storage, owner, monkeypatch):
    """Blob written before a failed insert is deleted again."""

    async def broken_create(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is gone"))

    monkeypatch.setattr(file_catalog, "create", broken_create)

    with pytest.raises(DatabaseError):
        await service.upload(b"data", "note.txt", "text/plain", owner.id)

    assert storage.objects == {}
    assert len(storage.deleted) == 1


async def test_list_is_scoped_and_newest_first(service, owner, other_owner):
    first = await service.upload(b"one", "one.txt", "text/plain", owner.id)
    second = await service.upload(b"two", "two.txt", "text/plain", owner.id)
    await service.upload(b"bob", "bob.txt", "text/plain", other_owner.id)

    files, total = await service.list(owner.id)

    assert total == 2
    assert [f.id for f in files] == [second.id, first.id]


async def test_download_url_for_owner(service, owner):
    db_file = await service.upload(b"data", "note.txt", "text/plain", owner.id)

    url = await service.get_download_url(db_file.id, owner.id)

    assert db_file.object_name in url
    assert "X-Amz-Expires=3600" in url


async def test_foreign_file_is_not_found(service, owner, other_owner):
    """Another owner's id looks exactly like a missing one."""
    db_file = await service.upload(b"data", "note.txt", "text/plain", owner.id)

    with pytest.raises(NotFoundError):
        await service.get_download_url(db_file.id, other_owner.id)
    with pytest.raises(NotFoundError):
        await service.read(db_file.id, other_owner.id)
    with pytest.raises(NotFoundError):
        await service.delete(db_file.id, other_owner.id)
    with pytest.raises(NotFoundError):
        await service.get_download_url("does-not-exist", other_owner.id)


async def test_read_returns_content(service, owner):
    db_file = await service.upload(b"hello", "note.txt", "text/plain", owner.id)

    found, content = await service.read(db_file.id, owner.id)

    assert found.id == db_file.id
    assert content == b"hello"


async def test_delete_twice(service, storage, owner, db):
    """First delete succeeds, second is NotFound."""
    db_file = await service.upload(b"data", "note.txt", "text/plain", owner.id)
    object_name = db_file.object_name

    await service.delete(db_file.id, owner.id)

    assert object_name not in storage.objects
    assert await _count_files(db) == 0
    with pytest.raises(NotFoundError):
        await service.delete(db_file.id, owner.id)


async def test_delete_storage_failure_keeps_row(service, storage, owner, db):
    """Blob delete failure aborts and the row survives for a retry."""
    db_file = await service.upload(b"data", "note.txt", "text/plain", owner.id)
    storage.fail_delete = True

    with pytest.raises(StorageError):
        await service.delete(db_file.id, owner.id)

    assert await file_catalog.get_for_owner(db, db_file.id, owner.id) is not None
    assert db_file.object_name in storage.objects

    storage.fail_delete = False
    await service.delete(db_file.id, owner.id)

    assert await file_catalog.get_for_owner(db, db_file.id, owner.id) is None


async def test_get_upload_url_writes_nothing(service, storage, owner, db):
    upload_url, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)

    assert object_name.startswith(f"{owner.id}/")
    assert object_name.endswith(".png")
    assert object_name in upload_url
    assert storage.objects == {}
    assert await _count_files(db) == 0


async def test_get_upload_url_rejects_disallowed_type(service, owner):
    with pytest.raises(ValidationError):
        await service.get_upload_url("movie.mp4", "video/mp4", owner.id)


async def test_record_metadata_after_client_upload(service, storage, owner):
    _, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)
    storage.objects[object_name] = (b"\x89PNG....", "image/png")

    db_file = await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)

    assert db_file.object_name == object_name
    assert db_file.size_bytes == 8
    files, total = await service.list(owner.id)
    assert total == 1


async def test_record_metadata_requires_stored_object(service, owner):
    _, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)

    with pytest.raises(ValidationError):
        await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)


async def test_record_metadata_rejects_size_mismatch(service, storage, owner):
    _, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)
    storage.objects[object_name] = (b"\x89PNG....", "image/png")

    with pytest.raises(ValidationError):
        await service.record_metadata("photo.png", "image/png", object_name, 4, owner.id)

    assert object_name not in storage.objects


async def test_record_metadata_rejects_foreign_key(service, storage, owner, other_owner):
    """Cannot catalog an object under someone else's prefix."""
    _, object_name = await service.get_upload_url("photo.png", "image/png", other_owner.id)
    storage.objects[object_name] = (b"\x89PNG....", "image/png")

    with pytest.raises(ValidationError):
        await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)

    assert object_name in storage.objects


async def test_record_metadata_twice_conflicts(service, storage, owner):
    _, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)
    storage.objects[object_name] = (b"\x89PNG....", "image/png")
    await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)

    with pytest.raises(ConflictError):
        await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)

    assert object_name in storage.objects


async def test_record_metadata_rejects_type_mismatch(service, storage, owner, db):
    """Declared type must match what the client actually stored."""
    _, object_name = await service.get_upload_url("photo.png", "image/png", owner.id)
    storage.objects[object_name] = (b"MZ......", "application/x-msdownload")

    with pytest.raises(ValidationError):
        await service.record_metadata("photo.png", "image/png", object_name, 8, owner.id)

    assert object_name not in storage.objects
    assert await _count_files(db) == 0


async def test_record_metadata_ignores_type_parameters(service, storage, owner):
    _, object_name = await service.get_upload_url("note.txt", "text/plain", owner.id)
    storage.objects[object_name] = (b"hello", "text/plain; charset=utf-8")

    db_file = await service.record_metadata("note.txt", "text/plain", object_name, 5, owner.id)

    assert db_file.mime_type == "text/plain"


async def test_record_metadata_removes_oversized_object(service, storage, owner, db):
    """Stored object over the limit is rejected and deleted, even when the size is reported honestly."""
    _, object_name = await service.get_upload_url("big.txt", "text/plain", owner.id)
    size = MAX_FILE_SIZE + 1
    storage.objects[object_name] = (b"x" * size, "text/plain")

    with pytest.raises(ValidationError):
        await service.record_metadata("big.txt", "text/plain", object_name, size, owner.id)

    assert object_name not in storage.objects
    assert await _count_files(db) == 0
