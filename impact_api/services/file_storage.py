"""
Media storage for project images.

Project services only see ``store(file) -> url`` and ``delete(url)``.
Files go to the local upload directory or to Cloudflare R2 depending on
``USE_R2_STORAGE``.
"""

import io
from pathlib import Path
from typing import Optional
from uuid import uuid4

import aiofiles
import boto3
import structlog
from botocore.exceptions import ClientError
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from impact_api.core.config import settings
from impact_api.core.exceptions import FileUploadError, FileSizeError, FileTypeError

logger = structlog.get_logger()


class FileStorage:
    """Validation shared by storage backends"""

    MAX_IMAGE_SIZE = settings.MAX_FILE_SIZE
    ALLOWED_IMAGE_TYPES = set(settings.ALLOWED_FILE_TYPES)

    EXTENSION_MAPPING = {
        "image/jpeg": ".jpg",
        "image/jpg": ".jpg",
        "image/png": ".png",
        "image/gif": ".gif",
        "image/webp": ".webp",
    }

    file_category = "images"

    async def store(self, file: UploadFile) -> str:
        raise NotImplementedError

    async def delete(self, url: str) -> bool:
        raise NotImplementedError

    async def _read_validated(self, file: UploadFile) -> bytes:
        """
        Read an upload and check its size, declared type and image content

        Raises:
            FileUploadError: If no file was sent
            FileSizeError: If the file is too large
            FileTypeError: If the type is not an allowed image type
        """
        if not file or not file.filename:
            raise FileUploadError("No file provided")

        content = await file.read()
        if len(content) > self.MAX_IMAGE_SIZE:
            raise FileSizeError(file.filename, len(content), self.MAX_IMAGE_SIZE)

        declared_mime = file.content_type or "unknown"
        if declared_mime not in self.ALLOWED_IMAGE_TYPES:
            raise FileTypeError(file.filename, declared_mime, list(self.ALLOWED_IMAGE_TYPES))

        try:
            with Image.open(io.BytesIO(content)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise FileTypeError(file.filename, declared_mime, list(self.ALLOWED_IMAGE_TYPES))

        return content

    def _generate_secure_filename(self, original_filename: str, mime_type: str) -> str:
        extension = self.EXTENSION_MAPPING.get(mime_type, "")
        if not extension and original_filename:
            extension = Path(original_filename).suffix.lower()
        return f"{uuid4()}{extension}"


class LocalFileStorage(FileStorage):
    """Stores uploads on local disk, served from ``/uploads``"""

    def __init__(self, upload_dir: Optional[str] = None, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.url_prefix = url_prefix.rstrip("/")
        (self.upload_dir / self.file_category).mkdir(parents=True, exist_ok=True)

    async def store(self, file: UploadFile) -> str:
        content = await self._read_validated(file)
        filename = self._generate_secure_filename(file.filename, file.content_type)
        file_path = self.upload_dir / self.file_category / filename

        async with aiofiles.open(file_path, "wb") as f:
            await f.write(content)

        logger.info("File stored locally", file_path=str(file_path), size=len(content))
        return f"{self.url_prefix}/{self.file_category}/{filename}"

    async def delete(self, url: str) -> bool:
        if not url or not url.startswith(self.url_prefix + "/"):
            return False

        relative = url[len(self.url_prefix) + 1:]
        file_path = (self.upload_dir / relative).resolve()
        if self.upload_dir.resolve() not in file_path.parents:
            logger.warning("Refusing to delete file outside upload directory", url=url)
            return False

        if file_path.exists():
            file_path.unlink()
            logger.info("File deleted", file_path=str(file_path))
            return True
        return False


class R2FileStorage(FileStorage):
    """Stores uploads in a Cloudflare R2 bucket through the S3 API"""

    def __init__(self):
        self.bucket = settings.R2_BUCKET_NAME
        self.public_url = (settings.R2_PUBLIC_URL or "").rstrip("/")
        self._client = None

    def _get_client(self):
        if self._client is None:
            if not all([settings.R2_ENDPOINT_URL, settings.R2_ACCESS_KEY_ID, settings.R2_SECRET_ACCESS_KEY]):
                raise FileUploadError("R2 credentials not configured")
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.R2_ENDPOINT_URL,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
                region_name="auto"
            )
        return self._client

    def _key_from_url(self, url: str) -> str:
        if self.public_url and url.startswith(self.public_url + "/"):
            return url[len(self.public_url) + 1:]
        return url.lstrip("/")

    async def store(self, file: UploadFile) -> str:
        content = await self._read_validated(file)
        key = f"{self.file_category}/{self._generate_secure_filename(file.filename, file.content_type)}"

        try:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=file.content_type
            )
        except ClientError as e:
            logger.error("R2 upload failed", error=str(e), file_key=key)
            raise FileUploadError(f"R2 upload failed: {str(e)}")

        logger.info("File uploaded to R2", file_key=key, bucket=self.bucket)
        return f"{self.public_url}/{key}" if self.public_url else key

    async def delete(self, url: str) -> bool:
        if not url:
            return False
        key = self._key_from_url(url)
        try:
            self._get_client().delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            logger.error("R2 delete failed", error=str(e), file_key=key)
            return False
        logger.info("File deleted from R2", file_key=key)
        return True


_storage: Optional[FileStorage] = None


def get_file_storage() -> FileStorage:
    """FastAPI dependency returning the configured storage backend"""
    global _storage
    if _storage is None:
        _storage = R2FileStorage() if settings.use_r2 else LocalFileStorage()
    return _storage
