"""Utilities for reading OpenAI Images API responses."""

from typing import Any, Optional


def _first_image(response: Any) -> Any:
    data = getattr(response, "data", None)
    if not data:
        return None
    return data[0]


def extract_image_b64(response: Any) -> Optional[str]:
    """Return the base64 payload of the first image in an images response.

    Args:
        response: Response object returned by `AsyncOpenAI.images.edit`.

    Returns:
        The `b64_json` string, or None when unavailable.
    """
    image = _first_image(response)
    if image is None:
        return None
    return getattr(image, "b64_json", None) or None


def extract_revised_prompt(response: Any) -> Optional[str]:
    """Return the model's revised prompt for the first image, if any."""
    image = _first_image(response)
    text = getattr(image, "revised_prompt", None) if image is not None else None
    return text.strip() if isinstance(text, str) and text.strip() else None

