"""Output sink that saves released images to a download directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Protocol, Union

import aiofiles

from utils.media_validation import parse_data_url

LOGGER = logging.getLogger(__name__)


class OutputSink(Protocol):
    """Receives a released output reference and performs the save action."""

    async def save(self, reference: Union[str, bytes], filename: str) -> None:
        ...


class FileOutputSink:
    """
    Write released images under a download directory.

    - The directory comes from the ``output_dir`` argument or, when omitted,
      the DOWNLOAD_DIR environment variable. A RuntimeError is raised if
      neither is set, or if the path is a file or cannot be created.
    - Existing files are never overwritten: ``name.png`` becomes
      ``name-1.png``, ``name-2.png`` and so on.
    """

    def __init__(self, output_dir: Optional[Union[Path, str]] = None) -> None:
        env_dir = os.getenv("DOWNLOAD_DIR")
        chosen = output_dir if output_dir is not None else env_dir

        if chosen is None or not str(chosen).strip():
            raise RuntimeError(
                "DOWNLOAD_DIR environment variable must be set to a writable "
                "directory path where downloaded images will be stored."
            )

        out_dir = Path(chosen).expanduser()

        if out_dir.exists() and not out_dir.is_dir():
            raise RuntimeError(
                f"DOWNLOAD_DIR={str(chosen)!r} points to a file, not a directory "
                f"({out_dir}). Please set DOWNLOAD_DIR to a directory path."
            )

        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(f"Failed to create or access download directory at {out_dir}") from exc

        self.output_dir = out_dir

    def _available_path(self, filename: str) -> Path:
        # Only keep the final path component so callers cannot escape the directory.
        candidate = self.output_dir / Path(filename).name
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate.exists():
            candidate = self.output_dir / f"{stem}-{counter}{suffix}"
            counter += 1
        return candidate

    async def save(self, reference: Union[str, bytes], filename: str) -> None:
        """Decode ``reference`` (data URL or raw bytes) and write it to disk.

        Raises:
            ValueError: If the reference is not a base64 data URL.
            OSError: If the file cannot be written.
        """
        if isinstance(reference, bytes):
            data = reference
        else:
            _, data = parse_data_url(reference)

        path = self._available_path(filename)
        async with aiofiles.open(path, "xb") as f:
            await f.write(data)
        LOGGER.info("Saved released image to %s (%d bytes)", path, len(data))
