"""Preview thumbnail generator.

Small wrapper around Pillow that turns raw image bytes into a PNG preview
that fits within the configured size while preserving aspect ratio. Images
with transparency are flattened against a solid background.

Example:
    tg = ThumbnailGenerator(max_size=(512, 512))
    png_bytes = tg.create_thumbnail(raw_bytes)
"""
from __future__ import annotations

import io
import os
from typing import Tuple

from PIL import Image, UnidentifiedImageError


def _default_max_size() -> Tuple[int, int]:
    edge = int(os.getenv("PREVIEW_MAX_SIZE", "512"))
    return (edge, edge)


class ThumbnailGenerator:
    """Generate PNG previews from image bytes.

    Args:
        max_size: Maximum width and height for the preview. Defaults to
            ``PREVIEW_MAX_SIZE`` (512) on both edges.
        background: Optional background color used when flattening alpha.
            If None, images with alpha are flattened against white.
    """

    def __init__(self, max_size: Tuple[int, int] | None = None, background: Tuple[int, int, int] | None = None):
        self.max_size = max_size or _default_max_size()
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, raw: bytes) -> bytes:
        """Create a PNG preview from raw image bytes.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        try:
            src = Image.open(io.BytesIO(raw))
            src.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise ValueError("Bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        background = Image.new("RGB", src.size, self.background)
        background.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        background.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()
