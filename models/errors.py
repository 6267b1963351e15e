"""Error taxonomy for the image edit workflow.

Every error carries a ``user_message`` that is safe to show in the UI. The
underlying cause (when there is one) is chained with ``raise ... from exc`` and
logged by the layer that caught it, never shown.
"""

from __future__ import annotations

from typing import Optional

GENERIC_RETRY_MESSAGE = "An unexpected error occurred. Please try again."


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    default_message = GENERIC_RETRY_MESSAGE

    def __init__(self, user_message: Optional[str] = None) -> None:
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class ValidationError(WorkflowError):
    """Raised before any state transition when a request is not acceptable."""

    default_message = "Please provide an image and a descriptive prompt."


class WorkflowBusyError(ValidationError):
    """Raised when an operation is attempted while a submission is in flight."""

    default_message = "An edit is already in progress. Please wait for it to finish."


class IngestionError(WorkflowError):
    """Raised when an image source cannot be fetched or read."""

    default_message = "Sorry, we couldn't load that image. Please try again or upload a different one."


class EncodingError(WorkflowError):
    """Raised when the asset bytes cannot be read at submit time."""

    default_message = "Sorry, we couldn't read your image. Please upload it again and retry."


class ServiceError(WorkflowError):
    """Raised when the image edit service call fails.

    The provider's own message is kept verbatim when one is available.
    """

    def __init__(self, cause_message: Optional[str] = None) -> None:
        cleaned = (cause_message or "").strip()
        super().__init__(cleaned or None)
