"""Tests for the uploads directory and result localization."""

import base64

import httpx
import pytest

from genstudio.errors import StorageError, ValidationError
from genstudio.http import ProviderHttp
from genstudio.jobs import GenerationTracker, InMemoryRecordStore
from genstudio.jobs.results import ResultLocalizer
from genstudio.providers import ProviderRegistry
from genstudio.schemas.models import GenerationRecord, GenerationStatus, ProviderStatus
from genstudio.storage import UploadStorage

from conftest import PNG_BYTES, PUBLIC_BASE_URL, FakeProvider


def test_filename_for_local_and_public_refs(storage):
    assert storage.filename_for("abc.png") == "abc.png"
    assert storage.filename_for("/uploads/abc.png") == "abc.png"
    assert storage.filename_for(f"{PUBLIC_BASE_URL}/uploads/abc.png") == "abc.png"
    assert storage.filename_for("https://cdn.example.com/uploads/abc.png") is None
    # No path traversal out of the uploads dir
    assert storage.filename_for("../../etc/passwd") == "passwd"


@pytest.mark.asyncio
async def test_save_and_delete_are_idempotent(storage):
    name = await storage.save_bytes(b"hello", "txt")
    assert name.endswith(".txt")
    assert storage.exists(name)
    assert storage.delete(storage.public_url(name)) is True
    assert storage.delete(name) is False
    assert storage.delete(None) is False
    assert storage.delete("https://cdn.example.com/foreign.png") is False


@pytest.mark.asyncio
async def test_new_filenames_do_not_collide(storage):
    names = {await storage.save_bytes(b"x", ".png") for _ in range(20)}
    assert len(names) == 20


@pytest.mark.asyncio
async def test_save_data_uri(storage):
    name = await storage.save_data_uri("data:image/png;base64," + base64.b64encode(PNG_BYTES).decode())
    assert name.endswith(".png")
    assert await storage.read_bytes(name) == PNG_BYTES
    with pytest.raises(ValidationError):
        await storage.save_data_uri("data:image/png;base64,@@not-base64@@")


@pytest.mark.asyncio
async def test_download_uses_content_type_for_extension(tmp_path):
    def handler(request):
        assert request.headers["x-goog-api-key"] == "k"
        return httpx.Response(200, content=b"video-bytes", headers={"content-type": "video/mp4"})

    http = ProviderHttp("download", transport=httpx.MockTransport(handler))
    storage = UploadStorage(tmp_path / "uploads", PUBLIC_BASE_URL, http=http)
    name = await storage.download("https://files.example.com/v", headers={"x-goog-api-key": "k"})
    assert name.endswith(".mp4")
    assert (tmp_path / "uploads" / name).read_bytes() == b"video-bytes"


@pytest.mark.asyncio
async def test_localizer_persists_inline_results(storage):
    localizer = ResultLocalizer(storage, ProviderRegistry({"gemini-image": FakeProvider("gemini-image")}),
                                download_remote=False)
    record = GenerationRecord(id="gen_1", provider="gemini-image")
    data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    status = await localizer(record, ProviderStatus(status=GenerationStatus.COMPLETED, image_url=data_uri))
    assert status.image_url.startswith(f"{PUBLIC_BASE_URL}/uploads/")
    assert status.thumbnail_url == status.image_url
    assert storage.exists(status.image_url)


@pytest.mark.asyncio
async def test_localizer_keeps_remote_url_when_download_fails(tmp_path):
    http = ProviderHttp("download", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    storage = UploadStorage(tmp_path / "uploads", PUBLIC_BASE_URL, http=http)
    localizer = ResultLocalizer(storage, ProviderRegistry({"kling": FakeProvider("kling")}))
    record = GenerationRecord(id="gen_1", provider="kling")
    url = "https://cdn.example.com/out.mp4"
    status = await localizer(record, ProviderStatus(status=GenerationStatus.COMPLETED, video_url=url))
    assert status.video_url == url
    assert status.thumbnail_url == url


@pytest.mark.asyncio
async def test_unwritable_uploads_fail_the_generation(tmp_path):
    storage = UploadStorage(tmp_path / "uploads", PUBLIC_BASE_URL)
    # A plain file where the directory should be makes every write fail
    blocked = tmp_path / "blocked"
    blocked.write_bytes(b"")
    storage.uploads_dir = blocked

    localizer = ResultLocalizer(storage, ProviderRegistry({"gemini-image": FakeProvider("gemini-image")}),
                                download_remote=False)
    tracker = GenerationTracker(InMemoryRecordStore(), finalizer=localizer)
    tracker.create(GenerationRecord(id="gen_1", provider="gemini-image", status=GenerationStatus.IN_PROGRESS))
    data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    record, became_terminal = await tracker.apply_status(
        "gen_1", ProviderStatus(status=GenerationStatus.COMPLETED, image_url=data_uri)
    )
    assert became_terminal
    assert record.status == GenerationStatus.FAILED
    assert record.error_code == "STORAGE_ERROR"
    assert (await tracker.wait_for_terminal("gen_1", timeout=1)).status == GenerationStatus.FAILED

    with pytest.raises(StorageError):
        await storage.save_bytes(b"x", "png")
