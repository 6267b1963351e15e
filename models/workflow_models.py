"""Domain models for the image edit workflow."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Union
from uuid import uuid4


class SourceHandle(Protocol):
    """Opaque reference to the raw bytes of an ingested image."""

    async def read(self) -> bytes:
        ...


@dataclass(frozen=True)
class ImageSource:
    """Raw binary source handed to ingestion.

    Exactly one of ``path``, ``data`` or ``url`` is set. ``filename`` and
    ``media_type`` are hints; the media type is re-detected from the bytes.
    """

    path: Optional[Path] = None
    data: Optional[bytes] = None
    url: Optional[str] = None
    filename: Optional[str] = None
    media_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path], media_type: Optional[str] = None) -> "ImageSource":
        path = Path(path)
        return cls(path=path, filename=path.name, media_type=media_type)

    @classmethod
    def from_bytes(cls, data: bytes, filename: Optional[str] = None, media_type: Optional[str] = None) -> "ImageSource":
        return cls(data=data, filename=filename, media_type=media_type)

    @classmethod
    def from_url(cls, url: str) -> "ImageSource":
        return cls(url=url)

    @property
    def is_remote(self) -> bool:
        return self.url is not None


@dataclass(frozen=True)
class ImageAsset:
    """The currently selected source image and its displayable preview.

    Attributes:
        source: Handle used to re-read the raw bytes on every encode.
        preview: Preview handle allocated in the owning ``PreviewRegistry``.
        filename: Filename hint from the upload, path or URL.
        media_type: MIME type detected from the bytes at ingest time.
        size: Byte length observed at ingest time.
    """

    source: SourceHandle
    preview: str
    filename: str
    media_type: str
    size: int


@dataclass(frozen=True)
class EncodedPayload:
    """Transport-ready image content. ``content_base64`` never has a data URL prefix."""

    media_type: str
    content_base64: str


@dataclass(frozen=True)
class EditResult:
    """Outcome of one successful edit.

    Attributes:
        output_reference: ``data:<mime>;base64,...`` URL of the edited image.
        text: Optional narrative text returned alongside the image.
        instruction: Instruction that produced this result.
        latency: Seconds spent in the service call.
    """

    output_reference: str
    text: Optional[str] = None
    instruction: Optional[str] = None
    latency: float = 0.0


@dataclass(frozen=True)
class Submission:
    """One instruction paired with one asset, in flight against the service."""

    asset: ImageAsset
    instruction: str
    id: str = field(default_factory=lambda: uuid4().hex)
    started_at: float = field(default_factory=time.time)


# Workflow states. Exactly one is active for a workflow at any instant.


@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Ready:
    asset: ImageAsset
    name = "ready"


@dataclass(frozen=True)
class Submitting:
    asset: ImageAsset
    submission: Submission
    name = "submitting"

    @property
    def instruction(self) -> str:
        return self.submission.instruction


@dataclass(frozen=True)
class Succeeded:
    asset: ImageAsset
    result: EditResult
    name = "succeeded"


@dataclass(frozen=True)
class Failed:
    asset: ImageAsset
    message: str
    name = "failed"


WorkflowState = Union[Idle, Ready, Submitting, Succeeded, Failed]


@dataclass(frozen=True)
class PendingDownload:
    """Output reference waiting for the download gate to clear."""

    output_reference: str
    filename: str
    requested_at: float = field(default_factory=time.time)
