import re

import pytest

from banner_studio.core.exceptions import BucketNotFoundError, StorageError, ValidationError
from banner_studio.core.storage import UploadedFile, generate_object_path


@pytest.mark.asyncio
async def test_upload_round_trip(storage):
    key = await storage.upload(b"data", "logos/a.png", "partner-assets")

    assert key == "logos/a.png"
    assert await storage.exists("logos/a.png", "partner-assets")
    assert storage.get_public_url(key, "partner-assets") == "http://test/static/storage/partner-assets/logos/a.png"


@pytest.mark.asyncio
async def test_upload_without_upsert_refuses_to_overwrite(storage):
    await storage.upload(b"first", "logos/a.png", "partner-assets", upsert=False)

    with pytest.raises(StorageError) as exc_info:
        await storage.upload(b"second", "logos/a.png", "partner-assets", upsert=False)

    assert exc_info.value.code == 409


@pytest.mark.asyncio
async def test_upsert_overwrites(storage, tmp_path):
    await storage.upload(b"first", "a.png", "banners")
    await storage.upload(b"second", "a.png", "banners")

    assert (tmp_path / "storage" / "banners" / "a.png").read_bytes() == b"second"


@pytest.mark.asyncio
async def test_missing_bucket(storage):
    with pytest.raises(BucketNotFoundError) as exc_info:
        await storage.upload(b"data", "a.png", "nope")

    assert exc_info.value.code == 404


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["", "../escape.png", "logos/../../escape.png"])
async def test_paths_outside_the_bucket_are_rejected(storage, path):
    with pytest.raises(ValidationError):
        await storage.upload(b"data", path, "banners")


@pytest.mark.asyncio
@pytest.mark.parametrize("bucket", ["..", ".", "banners/../..", "a\\b", ""])
async def test_bucket_names_cannot_leave_the_storage_root(storage, tmp_path, bucket):
    with pytest.raises(ValidationError):
        await storage.upload(b"data", "escaped.png", bucket)
    with pytest.raises(ValidationError):
        storage.get_public_url("escaped.png", bucket)

    assert not (tmp_path / "escaped.png").exists()


@pytest.mark.asyncio
async def test_delete(storage):
    await storage.upload(b"data", "a.png", "banners")

    assert await storage.delete("a.png", "banners")
    assert not await storage.delete("a.png", "banners")


def test_path_from_url(storage):
    url = storage.get_public_url("generated/banner desktop.png", "banners")

    assert storage.path_from_url(url, "banners") == "generated/banner desktop.png"
    assert storage.path_from_url("https://elsewhere.test/x.png", "banners") is None
    assert storage.path_from_url("http://test/static/storage/banners/", "banners") is None


def test_generate_object_path():
    assert re.fullmatch(r"logos/\d+-[0-9a-f]{8}\.png", generate_object_path("logos", "png"))
    assert generate_object_path("logos", ".png") != generate_object_path("logos", ".png")


@pytest.mark.parametrize("filename,content_type,expected", [
    ("Logo.PNG", "image/png", ".png"),
    ("", "image/jpeg", ".jpg"),
    ("", "application/x-unknown", ".png"),
])
def test_uploaded_file_extension(filename, content_type, expected):
    assert UploadedFile(filename, content_type, b"").extension == expected
