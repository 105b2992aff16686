"""Image storage with a provider interface.

Upload failures propagate to the caller (they abort the enclosing
operation). Callers that treat deletion as best-effort use
:func:`delete_image_quietly`.
"""

import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from fastapi import Request, UploadFile

from rentals.config import settings
from rentals.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


class ImageStorage(ABC):
    """Abstract interface for blob storage of property images."""

    @abstractmethod
    async def upload_image(self, file: UploadFile, key_hint: str) -> str:
        """Store ``file`` under a key derived from ``key_hint`` and return its public URL."""

    @abstractmethod
    async def delete_image(self, url: str) -> None:
        """Remove the blob behind ``url``."""


def _validate_upload(file: UploadFile) -> str:
    content_type = file.content_type or mimetypes.guess_type(file.filename or "")[0] or ""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Unsupported image type",
            errors=[f"{file.filename or 'file'}: expected one of {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"],
        )
    return content_type


class LocalImageStorage(ImageStorage):
    """Stores images on the local filesystem under ``root``."""

    def __init__(self, root: Path, base_url: str, max_size_bytes: int) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.max_size_bytes = max_size_bytes

    async def upload_image(self, file: UploadFile, key_hint: str) -> str:
        content_type = _validate_upload(file)
        data = await file.read()
        if len(data) > self.max_size_bytes:
            raise ValidationError("Image too large", errors=[f"{file.filename}: exceeds {self.max_size_bytes} bytes"])

        extension = mimetypes.guess_extension(content_type) or ".bin"
        relative = Path("properties") / key_hint / f"{uuid.uuid4().hex}{extension}"
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored image %s (%d bytes)", relative, len(data))
        return f"{self.base_url}/{relative.as_posix()}"

    async def delete_image(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL {url!r} is not managed by this storage")
        target = self.root / url[len(prefix):]
        target.unlink()
        logger.info("Deleted image %s", target)


async def delete_image_quietly(storage: ImageStorage, url: str | None) -> None:
    """Delete a blob, logging and swallowing any failure."""
    if not url:
        return
    try:
        await storage.delete_image(url)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not delete image %s: %s", url, exc)


def build_storage() -> ImageStorage:
    return LocalImageStorage(
        root=settings.media_root,
        base_url=settings.media_base_url,
        max_size_bytes=settings.max_image_size_bytes,
    )


def get_storage(request: Request) -> ImageStorage:
    """FastAPI dependency returning the storage created at startup."""
    return request.app.state.storage
