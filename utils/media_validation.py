"""Validation helpers for image content and data URLs."""

import base64
import binascii
import io
import mimetypes
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/bmp",
}

# Pillow formats whose MIME type differs from what browsers and APIs expect.
_FORMAT_MIME_OVERRIDES = {
    "MPO": "image/jpeg",
}

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/bmp": "bmp",
}


def normalize_media_type(media_type: Optional[str]) -> Optional[str]:
    """Lower-case a MIME type and drop any parameters (``;charset=...``)."""
    if not media_type:
        return None
    mime = media_type.lower().split(";", 1)[0].strip()
    return mime or None


def detect_image_media_type(raw: bytes, declared: Optional[str] = None, filename: Optional[str] = None) -> str:
    """Return the MIME type of ``raw`` image bytes.

    Pillow's format detection wins over the declared type; the declared type
    and then the filename extension are used only when Pillow knows no MIME
    type for the detected format.

    Raises:
        ValueError: If the bytes are empty or not a readable image.
    """
    if not raw:
        raise ValueError("Image content is empty.")
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format or ""
            detected = _FORMAT_MIME_OVERRIDES.get(fmt) or Image.MIME.get(fmt)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ValueError("Bytes are not a supported image format.") from exc

    mime = normalize_media_type(detected) or normalize_media_type(declared)
    if mime is None and filename:
        mime = normalize_media_type(mimetypes.guess_type(filename)[0])
    if mime not in ALLOWED_IMAGE_TYPES:
        raise ValueError(f"Unsupported image content type: {mime or 'unknown'}")
    return mime


def extension_for_media_type(media_type: Optional[str], default: str = "png") -> str:
    """Return a file extension for an image MIME type."""
    mime = normalize_media_type(media_type)
    if mime in _EXTENSIONS:
        return _EXTENSIONS[mime]
    if mime and "/" in mime and mime.split("/")[-1]:
        return mime.split("/")[-1]
    return default


def to_data_url(content_base64: str, media_type: str) -> str:
    """Build a ``data:`` URL from base64 content without a prefix."""
    return f"data:{media_type};base64,{content_base64}"


def parse_data_url(reference: str) -> Tuple[str, bytes]:
    """Split a base64 data URL into ``(media_type, raw_bytes)``.

    Raises:
        ValueError: If the reference is not a base64 data URL.
    """
    if not reference.startswith("data:") or "," not in reference:
        raise ValueError("Reference is not a data URL.")
    header, content = reference[5:].split(",", 1)
    media_type, _, encoding = header.partition(";")
    if encoding != "base64":
        raise ValueError("Only base64 data URLs are supported.")
    try:
        raw = base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Invalid base64 data in reference.") from exc
    return normalize_media_type(media_type) or "application/octet-stream", raw
