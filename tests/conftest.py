"""Shared pytest fixtures for the image edit workflow tests.

Async tests use the anyio pytest plugin on the asyncio backend.
"""

from __future__ import annotations

import asyncio
import base64
import io
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from PIL import Image

from models.workflow_models import EditResult, EncodedPayload
from services.edit_workflow import EditWorkflow


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================================================
# Image Fixtures
# ============================================================================


def make_image_bytes(fmt: str = "PNG", size: Tuple[int, int] = (64, 48), color=(200, 30, 30)) -> bytes:
    """Render a solid-color image in the given Pillow format."""
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG", color=(10, 120, 240))


@pytest.fixture
def mpo_bytes() -> bytes:
    """Two-frame JPEG with multi-picture data, as phone cameras write it."""
    out = io.BytesIO()
    frames = [Image.new("RGB", (64, 48), (90, 90, 90)), Image.new("RGB", (64, 48), (30, 30, 30))]
    frames[0].save(out, format="MPO", save_all=True, append_images=frames[1:])
    return out.getvalue()


@pytest.fixture
def image_file(tmp_path: Path, png_bytes: bytes) -> Path:
    path = tmp_path / "cat.png"
    path.write_bytes(png_bytes)
    return path


# ============================================================================
# Collaborator Fakes
# ============================================================================


class FakeEditService:
    """Image edit client double.

    Each call returns a distinct data URL. With ``hold`` enabled every call
    parks on its own event in ``waiters`` until the test sets it. Exceptions
    queued in ``errors`` are raised in order.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[EncodedPayload, str]] = []
        self.hold = False
        self.waiters: List[asyncio.Event] = []
        self.errors: List[Exception] = []

    async def edit(self, payload: EncodedPayload, instruction: str) -> EditResult:
        self.calls.append((payload, instruction))
        call_number = len(self.calls)
        if self.hold:
            event = asyncio.Event()
            self.waiters.append(event)
            await event.wait()
        if self.errors:
            raise self.errors.pop(0)
        content = base64.b64encode(f"result-{call_number}".encode("utf-8")).decode("utf-8")
        return EditResult(
            output_reference=f"data:image/png;base64,{content}",
            text=f"Edited with: {instruction}",
            instruction=instruction,
        )


class RecordingSink:
    """Output sink double that records every save call."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.saved: List[Tuple[str, str]] = []
        self.error = error

    async def save(self, reference, filename: str) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append((reference, filename))


async def wait_for_waiters(service: FakeEditService, count: int) -> None:
    """Yield to the loop until ``count`` held calls are parked."""
    for _ in range(200):
        if len(service.waiters) >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"expected {count} parked edit calls, saw {len(service.waiters)}")


@pytest.fixture
def fake_service() -> FakeEditService:
    return FakeEditService()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def workflow(fake_service: FakeEditService, recording_sink: RecordingSink) -> EditWorkflow:
    return EditWorkflow(fake_service, recording_sink)


@pytest.fixture
def waiters():
    return wait_for_waiters
