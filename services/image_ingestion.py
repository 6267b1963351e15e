"""Turn raw image sources into assets and assets into transport payloads.

Sources can be a local file, uploaded bytes, or a remote URL (example
gallery). Ingestion reads the bytes once to validate them and build a preview;
``encode`` re-reads them from the asset's source handle on every call.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import aiofiles
import httpx

from models.errors import EncodingError, IngestionError
from models.workflow_models import EncodedPayload, ImageAsset, ImageSource
from services.preview_registry import PreviewRegistry
from services.thumbnail_generator import ThumbnailGenerator
from utils.media_validation import detect_image_media_type

LOGGER = logging.getLogger(__name__)
DEFAULT_FETCH_TIMEOUT = 20.0
DEFAULT_FILENAME = "example.jpg"


def fetch_timeout() -> float:
    """Return the remote fetch timeout in seconds from EXAMPLE_FETCH_TIMEOUT.

    Raises:
        RuntimeError: If the variable is not a positive number.
    """
    raw = os.getenv("EXAMPLE_FETCH_TIMEOUT")
    if raw is None or not raw.strip():
        return DEFAULT_FETCH_TIMEOUT
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"EXAMPLE_FETCH_TIMEOUT={raw!r} is not a number. Set it to a timeout in seconds."
        ) from exc
    if not value > 0:
        raise RuntimeError(f"EXAMPLE_FETCH_TIMEOUT={raw!r} must be a positive number of seconds.")
    return value


class FileSourceHandle:
    """Source handle that re-reads a local file on every ``read``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def read(self) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()

    def __repr__(self) -> str:
        return f"FileSourceHandle({str(self.path)!r})"


class MemorySourceHandle:
    """Source handle over bytes already held in memory (uploads, fetched URLs)."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    async def read(self) -> bytes:
        return self._data

    def __repr__(self) -> str:
        return f"MemorySourceHandle({len(self._data)} bytes)"


def filename_from_url(url: str) -> str:
    """Return the last path segment of a URL, or a generic example filename."""
    segment = urlparse(url).path.rsplit("/", 1)[-1]
    return segment or DEFAULT_FILENAME


class ImageIngestor:
    """Read image sources into ``ImageAsset`` objects and encode them for transport.

    Args:
        thumbnails: Preview generator; defaults to ``ThumbnailGenerator()``.
        http_client: Optional ``httpx.AsyncClient`` used for remote sources.
            When omitted a short-lived client is created per fetch.
    """

    def __init__(
        self,
        thumbnails: Optional[ThumbnailGenerator] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.thumbnails = thumbnails or ThumbnailGenerator()
        self.http_client = http_client

    async def ingest(self, source: ImageSource, previews: PreviewRegistry) -> ImageAsset:
        """Read ``source`` and allocate a preview for it in ``previews``.

        Releasing the preview of any previous asset is the caller's job; this
        method only allocates.

        Raises:
            IngestionError: If the source cannot be fetched, read, or is not an image.
        """
        if source.is_remote:
            raw = await self._fetch(source.url)
            filename = filename_from_url(source.url)
            handle = MemorySourceHandle(raw)
        elif source.path is not None:
            handle = FileSourceHandle(source.path)
            try:
                raw = await handle.read()
            except OSError as exc:
                LOGGER.error("Failed to read image file %s: %s", source.path, exc)
                raise IngestionError() from exc
            filename = source.filename or source.path.name
        elif source.data is not None:
            raw = source.data
            filename = source.filename or "uploaded_image"
            handle = MemorySourceHandle(raw)
        else:
            raise IngestionError()

        try:
            media_type = detect_image_media_type(raw, source.media_type, filename)
            # Pillow decoding is blocking -> run in thread
            preview_png = await asyncio.to_thread(self.thumbnails.create_thumbnail, raw)
        except ValueError as exc:
            LOGGER.error("Rejected image %s: %s", filename, exc)
            raise IngestionError() from exc

        preview = previews.allocate(preview_png)
        return ImageAsset(source=handle, preview=preview, filename=filename, media_type=media_type, size=len(raw))

    async def encode(self, asset: ImageAsset) -> EncodedPayload:
        """Read the asset's bytes once and return them as content-only base64.

        Raises:
            EncodingError: If the bytes cannot be read.
        """
        try:
            raw = await asset.source.read()
        except OSError as exc:
            LOGGER.error("Failed to read image %s for encoding: %s", asset.filename, exc)
            raise EncodingError() from exc
        if not raw:
            LOGGER.error("Image %s is empty at encode time", asset.filename)
            raise EncodingError()
        encoded = base64.b64encode(raw).decode("utf-8")
        return EncodedPayload(media_type=asset.media_type, content_base64=encoded)

    async def _fetch(self, url: str) -> bytes:
        """Download a remote image, raising IngestionError on any failure."""
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=fetch_timeout()) as client:
                    response = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            LOGGER.error("Failed to fetch example image %s: %s", url, exc)
            raise IngestionError() from exc

        if not response.is_success:
            LOGGER.error("Network response was not ok for %s. Status: %s", url, response.status_code)
            raise IngestionError()
        return response.content
