"""In-memory registry of preview handles for ingested images."""

from __future__ import annotations

from typing import Dict
from uuid import uuid4

PREVIEW_SCHEME = "preview://"


class PreviewRegistry:
    """Allocate, resolve and release preview handles.

    A handle looks like ``preview://<hex>`` and maps to PNG bytes. Handles are
    released explicitly by their owner; a released handle no longer resolves.
    """

    def __init__(self) -> None:
        self._previews: Dict[str, bytes] = {}

    def allocate(self, png_bytes: bytes) -> str:
        """Store preview bytes and return a new handle."""
        handle = f"{PREVIEW_SCHEME}{uuid4().hex}"
        self._previews[handle] = png_bytes
        return handle

    def resolve(self, handle: str) -> bytes:
        """Return the preview bytes or raise KeyError if the handle is not live."""
        png = self._previews.get(handle)
        if png is None:
            raise KeyError(f"Preview {handle} not found")
        return png

    def release(self, handle: str) -> bool:
        """Release a handle. Returns False when it was already released."""
        return self._previews.pop(handle, None) is not None

    def is_live(self, handle: str) -> bool:
        return handle in self._previews

    @property
    def live_count(self) -> int:
        return len(self._previews)
