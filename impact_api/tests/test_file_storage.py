"""
Media storage tests for the local and R2 backends
"""

import io

import pytest
from botocore.exceptions import ClientError
from fastapi import UploadFile
from starlette.datastructures import Headers

from impact_api.core.config import settings
from impact_api.core.exceptions import FileTypeError, FileSizeError, FileUploadError
from impact_api.services.file_storage import R2FileStorage


def upload(content: bytes, filename: str = "photo.png", content_type: str = "image/png") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename, headers=Headers({"content-type": content_type}))


class TestLocalFileStorage:
    """Test storing and deleting images on disk"""

    async def test_store_and_delete(self, storage, upload_dir, png_bytes):
        url = await storage.store(upload(png_bytes))

        assert url.startswith("/uploads/images/") and url.endswith(".png")
        path = upload_dir / url.removeprefix("/uploads/")
        assert path.read_bytes() == png_bytes

        assert await storage.delete(url) is True
        assert not path.exists()
        assert await storage.delete(url) is False

    async def test_rejects_declared_non_image(self, storage):
        with pytest.raises(FileTypeError):
            await storage.store(upload(b"hello", filename="notes.txt", content_type="text/plain"))

    async def test_rejects_fake_image(self, storage):
        """Test content that is not an image is rejected even with an image type"""
        with pytest.raises(FileTypeError):
            await storage.store(upload(b"definitely not a png"))

    async def test_rejects_oversized_file(self, storage, png_bytes, monkeypatch):
        monkeypatch.setattr(storage, "MAX_IMAGE_SIZE", 10)

        with pytest.raises(FileSizeError):
            await storage.store(upload(png_bytes))

    async def test_rejects_missing_filename(self, storage, png_bytes):
        with pytest.raises(FileUploadError):
            await storage.store(upload(png_bytes, filename=""))

    async def test_delete_refuses_paths_outside_upload_dir(self, storage, tmp_path):
        outside = tmp_path / "keep.txt"
        outside.write_text("keep")

        assert await storage.delete("/uploads/../keep.txt") is False
        assert outside.exists()

    async def test_delete_ignores_foreign_urls(self, storage):
        assert await storage.delete("https://cdn.example.org/images/a.png") is False


class RecordingS3Client:
    """Stands in for the boto3 S3 client and records every call"""

    def __init__(self, fail_with: str = None):
        self.fail_with = fail_with
        self.uploads = []
        self.deleted = []

    def _maybe_fail(self, operation: str):
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with, "Message": "denied"}}, operation)

    def put_object(self, Bucket, Key, Body, ContentType):
        self._maybe_fail("PutObject")
        self.uploads.append({"bucket": Bucket, "key": Key, "body": Body, "content_type": ContentType})

    def delete_object(self, Bucket, Key):
        self._maybe_fail("DeleteObject")
        self.deleted.append((Bucket, Key))


@pytest.fixture
def r2_storage():
    r2 = R2FileStorage()
    r2.bucket = "impact-media"
    r2.public_url = "https://media.example.org"
    r2._client = RecordingS3Client()
    return r2


class TestR2FileStorage:
    """Test uploads and deletes against the R2 bucket"""

    async def test_store_returns_public_url(self, r2_storage, png_bytes):
        url = await r2_storage.store(upload(png_bytes))

        uploaded = r2_storage._client.uploads[0]
        assert uploaded["bucket"] == "impact-media"
        assert uploaded["key"].startswith("images/") and uploaded["key"].endswith(".png")
        assert uploaded["body"] == png_bytes
        assert uploaded["content_type"] == "image/png"
        assert url == f"https://media.example.org/{uploaded['key']}"

    async def test_store_without_public_url_returns_key(self, r2_storage, png_bytes):
        r2_storage.public_url = ""

        key = await r2_storage.store(upload(png_bytes))

        assert key == r2_storage._client.uploads[0]["key"]

    async def test_delete_maps_public_url_to_key(self, r2_storage):
        assert await r2_storage.delete("https://media.example.org/images/abc.png") is True
        assert await r2_storage.delete("/images/def.png") is True

        assert r2_storage._client.deleted == [
            ("impact-media", "images/abc.png"),
            ("impact-media", "images/def.png"),
        ]

    async def test_delete_empty_url_is_noop(self, r2_storage):
        assert await r2_storage.delete("") is False
        assert r2_storage._client.deleted == []

    async def test_upload_failure_raises(self, r2_storage, png_bytes):
        r2_storage._client = RecordingS3Client(fail_with="AccessDenied")

        with pytest.raises(FileUploadError) as exc_info:
            await r2_storage.store(upload(png_bytes))

        assert "R2 upload failed" in exc_info.value.message

    async def test_delete_failure_returns_false(self, r2_storage):
        r2_storage._client = RecordingS3Client(fail_with="NoSuchKey")

        assert await r2_storage.delete("https://media.example.org/images/abc.png") is False

    async def test_missing_credentials(self, monkeypatch, png_bytes):
        monkeypatch.setattr(settings, "R2_ENDPOINT_URL", None)
        r2 = R2FileStorage()

        with pytest.raises(FileUploadError):
            await r2.store(upload(png_bytes))
