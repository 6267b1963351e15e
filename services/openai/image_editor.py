"""Image editing via the OpenAI Images API."""

import base64
import binascii
import logging
import os
import time
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI

from models.errors import ServiceError
from models.workflow_models import EditResult, EncodedPayload
from services.openai.response_utils import extract_image_b64, extract_revised_prompt
from utils.media_validation import extension_for_media_type, to_data_url

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1")
OUTPUT_FORMAT = os.getenv("OPENAI_IMAGE_FORMAT", "png")


class ImageEditClient(Protocol):
    """Anything that can turn an encoded image and an instruction into an EditResult."""

    async def edit(self, payload: EncodedPayload, instruction: str) -> EditResult:
        ...


def _provider_message(exc: Exception) -> Optional[str]:
    """Return the human-readable message carried by an SDK error, if any."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    text = str(exc)
    return text or None


class ImageEditService:
    """Send one edit request per call to OpenAI. No retries are attempted here."""

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_MODEL, output_format: str = OUTPUT_FORMAT) -> None:
        """Initialize the service with an OpenAI async client.

        Args:
            client: Shared async OpenAI client.
            model: Image model name; defaults to ``OPENAI_IMAGE_MODEL``.
            output_format: ``png``, ``jpeg`` or ``webp``.
        """
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.output_format = output_format

    @property
    def output_media_type(self) -> str:
        return f"image/{self.output_format}"

    async def edit(self, payload: EncodedPayload, instruction: str) -> EditResult:
        """Apply ``instruction`` to the encoded image.

        Raises:
            ServiceError: If the request fails or the response carries no image.
        """
        try:
            image_bytes = base64.b64decode(payload.content_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ServiceError("The image could not be prepared for editing.") from exc

        start_time = time.time()
        response = await self._create_edit(image_bytes, payload.media_type, instruction)
        latency = time.time() - start_time

        b64_image = extract_image_b64(response)
        if not b64_image:
            LOGGER.error("Edit response did not include image data: %r", response)
            raise ServiceError("The model did not return an edited image. Try a different prompt.")

        LOGGER.info("Image edit completed in %.3fs", latency)
        return EditResult(
            output_reference=to_data_url(b64_image, self.output_media_type),
            text=extract_revised_prompt(response),
            instruction=instruction,
            latency=latency,
        )

    async def _create_edit(self, image_bytes: bytes, media_type: str, instruction: str) -> Any:
        """Send the edit request to the OpenAI Images API."""
        filename = f"input.{extension_for_media_type(media_type)}"
        try:
            return await self.client.images.edit(
                model=self.model,
                image=(filename, image_bytes, media_type),
                prompt=instruction,
                output_format=self.output_format,
            )
        except Exception as exc:
            LOGGER.error("Error during OpenAI image edit call: %s", exc)
            raise ServiceError(_provider_message(exc)) from exc
