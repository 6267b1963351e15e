"""Acknowledgment gate between requesting a download and receiving the file."""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from models.workflow_models import PendingDownload
from services.output_sink import OutputSink
from utils.media_validation import extension_for_media_type, normalize_media_type

LOGGER = logging.getLogger(__name__)
FILENAME_STEM = os.getenv("DOWNLOAD_FILENAME_STEM", "edited-image")
SAVE_FAILED_NOTICE = "The image could not be saved. Please try downloading it again."


def suggested_filename(output_reference: str, stem: str = FILENAME_STEM) -> str:
    """Derive ``<stem>.<ext>`` from the media type of a data URL reference."""
    media_type = None
    if output_reference.startswith("data:") and ";" in output_reference:
        media_type = normalize_media_type(output_reference[5 : output_reference.index(";")])
    return f"{stem}.{extension_for_media_type(media_type)}"


class DownloadGate:
    """Hold one output reference until the acknowledgment step completes.

    Args:
        sink: Output sink that performs the save on release.
        is_releasable: Callback telling whether a reference belongs to the
            current successful result.
    """

    def __init__(self, sink: OutputSink, is_releasable: Callable[[str], bool]) -> None:
        self.sink = sink
        self._is_releasable = is_releasable
        self._pending: Optional[PendingDownload] = None
        self.last_notice: Optional[str] = None

    @property
    def pending(self) -> Optional[PendingDownload]:
        return self._pending

    @property
    def awaiting_acknowledgment(self) -> bool:
        return self._pending is not None

    def request_release(self, output_reference: str) -> bool:
        """Park a reference and ask for acknowledgment.

        Returns True when the acknowledgment step must now run, False when the
        request was ignored (no successful result, unknown reference, or a
        download already waiting).
        """
        if self._pending is not None:
            LOGGER.info("Download already awaiting acknowledgment; ignoring new request")
            return False
        if not output_reference or not self._is_releasable(output_reference):
            return False
        self._pending = PendingDownload(
            output_reference=output_reference,
            filename=suggested_filename(output_reference),
        )
        self.last_notice = None
        return True

    async def acknowledge(self) -> Optional[str]:
        """Release the pending reference to the sink and clear the slot.

        Returns the suggested filename handed to the sink, or None when
        nothing was pending. A failed save is logged and reported through
        ``last_notice``; the slot is cleared either way.
        """
        pending = self._pending
        if pending is None:
            return None
        self._pending = None
        try:
            await self.sink.save(pending.output_reference, pending.filename)
        except Exception:
            LOGGER.exception("Failed to save released image %s", pending.filename)
            self.last_notice = SAVE_FAILED_NOTICE
        return pending.filename

    def cancel(self) -> bool:
        """Drop the pending reference without releasing it."""
        had_pending = self._pending is not None
        self._pending = None
        self.last_notice = None
        return had_pending
