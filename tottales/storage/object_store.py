"""
Binary asset storage for child photos and generated page illustrations.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from pathlib import Path, PurePosixPath
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class StorageBuckets:
    CHILD_PHOTOS = "child-photos"
    STORY_IMAGES = "story-images"
    PREVIEW_IMAGES = "preview-images"


class ObjectStorage(Protocol):
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` and return its public URL."""
        ...

    async def remove(self, bucket: str, paths: Sequence[str]) -> None: ...

    async def get_signed_url(self, bucket: str, path: str, ttl: int = 3600) -> str: ...


def extension_for_mime_type(mime_type: str) -> str:
    if mime_type in {"image/jpeg", "image/jpg"}:
        return "jpg"
    guessed = mimetypes.guess_extension(mime_type or "")
    return guessed.lstrip(".") if guessed else "png"


def story_image_path(story_id: str, page_number: int, mime_type: str = "image/png") -> str:
    """
    Storage key for a page illustration. The millisecond suffix keeps regenerated
    images from overwriting earlier uploads.
    """
    timestamp = int(time.time() * 1000)
    return f"{story_id}/page-{page_number}-{timestamp}.{extension_for_mime_type(mime_type)}"


class LocalObjectStorage:
    """
    Filesystem-backed storage rooted at ``root``; public URLs are ``file://`` URIs.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Storage path must be relative and stay inside the bucket: {path!r}")
        return self._root / bucket / Path(*relative.parts)

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        target = self.resolve(bucket, path)
        await asyncio.to_thread(_write_bytes, target, data)
        logger.debug("Stored %d bytes (%s) at %s", len(data), content_type, target)
        return target.as_uri()

    async def remove(self, bucket: str, paths: Sequence[str]) -> None:
        for path in paths:
            target = self.resolve(bucket, path)
            await asyncio.to_thread(target.unlink, missing_ok=True)

    async def get_signed_url(self, bucket: str, path: str, ttl: int = 3600) -> str:
        target = self.resolve(bucket, path)
        if not target.exists():
            raise FileNotFoundError(f"No object stored at '{bucket}/{path}'.")
        expires_at = int(time.time()) + ttl
        return f"{target.as_uri()}?expires={expires_at}"


def _write_bytes(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
