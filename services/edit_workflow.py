"""Edit workflow orchestrator.

Owns the single-slot state of one editing session: at most one asset, one
instruction draft, one in-flight submission, one result and one pending
download. The lifecycle is

    Idle -> Ready(asset) -> Submitting -> Succeeded(result) | Failed(message)

with re-ingest allowed from any settled state and a full reset back to Idle
from anywhere. A completion is applied only if its submission is still the
current one; anything else is a stale completion and is dropped.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional

from models.errors import (
    GENERIC_RETRY_MESSAGE,
    EncodingError,
    IngestionError,
    ServiceError,
    ValidationError,
    WorkflowBusyError,
)
from models.workflow_models import (
    EditResult,
    Failed,
    Idle,
    ImageAsset,
    ImageSource,
    Ready,
    Submission,
    Submitting,
    Succeeded,
    WorkflowState,
)
from services.download_gate import DownloadGate
from services.image_ingestion import ImageIngestor
from services.openai.edit_prompts import random_example_prompt
from services.openai.image_editor import ImageEditClient
from services.output_sink import OutputSink
from services.preview_registry import PreviewRegistry
from services.prompt_history import PromptHistoryLedger

LOGGER = logging.getLogger(__name__)
EXAMPLE_LOAD_FAILED = "Sorry, we couldn't load that example. Please try another or upload your own image."


class EditWorkflow:
    """Sequence ingestion, submission and result handling for one user.

    Args:
        service: Image edit client called once per submission.
        sink: Output sink used by the download gate.
        ingestor: Optional preconfigured ``ImageIngestor``.
        history: Optional ledger; a fresh five-entry ledger by default.
        rng: Optional random generator for example prompt suggestions.
    """

    def __init__(
        self,
        service: ImageEditClient,
        sink: OutputSink,
        ingestor: Optional[ImageIngestor] = None,
        history: Optional[PromptHistoryLedger] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.service = service
        self.ingestor = ingestor or ImageIngestor()
        self.previews = PreviewRegistry()
        self.gate = DownloadGate(sink, self._is_current_output)
        self._history = history or PromptHistoryLedger()
        self._rng = rng
        self._state: WorkflowState = Idle()
        self.instruction = ""
        self.selected_history: Optional[str] = None
        self.notice: Optional[str] = None

    # -- read-only views -------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def asset(self) -> Optional[ImageAsset]:
        return getattr(self._state, "asset", None)

    @property
    def result(self) -> Optional[EditResult]:
        return self._state.result if isinstance(self._state, Succeeded) else None

    @property
    def error_message(self) -> Optional[str]:
        return self._state.message if isinstance(self._state, Failed) else None

    @property
    def history(self) -> List[str]:
        return self._history.entries

    @property
    def is_submitting(self) -> bool:
        return isinstance(self._state, Submitting)

    def _ensure_not_submitting(self) -> None:
        if self.is_submitting:
            raise WorkflowBusyError()

    # -- ingestion -------------------------------------------------------

    async def ingest(self, source: ImageSource) -> ImageAsset:
        """Replace the current asset with one read from ``source``.

        Clears the result, error, instruction draft and history selection.
        The ledger contents are kept.

        Raises:
            WorkflowBusyError: If a submission is in flight.
            IngestionError: If the source cannot be read; state is unchanged.
        """
        self._ensure_not_submitting()
        try:
            asset = await self.ingestor.ingest(source, self.previews)
        except IngestionError as exc:
            self.notice = exc.user_message
            raise

        # A submission may have started while the bytes were being read.
        if self.is_submitting:
            self.previews.release(asset.preview)
            raise WorkflowBusyError()

        self._release_current_preview()
        self.gate.cancel()
        self._state = Ready(asset)
        self.instruction = ""
        self.selected_history = None
        self.notice = None
        LOGGER.info("Ingested image %s (%s, %d bytes)", asset.filename, asset.media_type, asset.size)
        return asset

    async def load_example(self, url: str, prompt: str) -> ImageAsset:
        """Ingest a gallery image by URL and pre-fill its example prompt."""
        try:
            asset = await self.ingest(ImageSource.from_url(url))
        except IngestionError as exc:
            self.notice = EXAMPLE_LOAD_FAILED
            raise IngestionError(EXAMPLE_LOAD_FAILED) from exc
        self.instruction = prompt
        return asset

    # -- instruction draft -----------------------------------------------

    def set_instruction(self, text: str) -> None:
        self._ensure_not_submitting()
        self.instruction = text or ""
        self.selected_history = None

    def select_from_history(self, instruction: str) -> str:
        """Copy a ledger entry into the instruction draft."""
        self._ensure_not_submitting()
        if instruction not in self._history:
            raise ValidationError("That prompt is not in your recent history.")
        self.instruction = instruction
        self.selected_history = instruction
        return instruction

    def suggest_example(self) -> str:
        """Fill the instruction draft with a random example prompt."""
        self._ensure_not_submitting()
        self.instruction = random_example_prompt(self._rng)
        self.selected_history = None
        return self.instruction

    # -- submission ------------------------------------------------------

    def begin_submission(self, instruction: Optional[str] = None) -> Submission:
        """Validate and move to Submitting, recording the instruction in history.

        ``instruction`` defaults to the current draft.

        Raises:
            WorkflowBusyError: If a submission is already in flight.
            ValidationError: If there is no asset or the instruction is blank.
        """
        self._ensure_not_submitting()
        raw = self.instruction if instruction is None else instruction
        text = (raw or "").strip()
        asset = self.asset
        if asset is None or not text:
            raise ValidationError()

        submission = Submission(asset=asset, instruction=text)
        self.instruction = raw
        self.notice = None
        self.gate.cancel()
        self._history.record(text)
        self._state = Submitting(asset=asset, submission=submission)
        return submission

    async def run_submission(self, submission: Submission) -> WorkflowState:
        """Encode the asset, call the service and apply the outcome if still current."""
        try:
            payload = await self.ingestor.encode(submission.asset)
            result = await self.service.edit(payload, submission.instruction)
        except (EncodingError, ServiceError) as exc:
            return self._complete(submission, Failed(asset=submission.asset, message=exc.user_message))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Image editing failed: %s", exc)
            return self._complete(submission, Failed(asset=submission.asset, message=GENERIC_RETRY_MESSAGE))
        return self._complete(submission, Succeeded(asset=submission.asset, result=result))

    async def submit(self, instruction: Optional[str] = None) -> WorkflowState:
        """Run one full submission and return the resulting state."""
        submission = self.begin_submission(instruction)
        return await self.run_submission(submission)

    def _complete(self, submission: Submission, outcome: WorkflowState) -> WorkflowState:
        current = self._state
        if not (isinstance(current, Submitting) and current.submission is submission):
            LOGGER.info("Discarding stale completion for submission %s", submission.id)
            return current
        self._state = outcome
        return outcome

    # -- reset -----------------------------------------------------------

    def reset(self) -> None:
        """Return to Idle, clearing asset, draft, result, error and history."""
        self._release_current_preview()
        self.gate.cancel()
        self._state = Idle()
        self.instruction = ""
        self.selected_history = None
        self.notice = None
        self._history.clear()

    def _release_current_preview(self) -> None:
        asset = self.asset
        if asset is not None:
            self.previews.release(asset.preview)

    # -- download gate ---------------------------------------------------

    def _is_current_output(self, reference: str) -> bool:
        result = self.result
        return result is not None and result.output_reference == reference

    def request_release(self, output_reference: Optional[str] = None) -> bool:
        """Ask to download a result; defaults to the current result's reference."""
        if output_reference is None:
            result = self.result
            if result is None:
                return False
            output_reference = result.output_reference
        return self.gate.request_release(output_reference)

    async def acknowledge_release(self) -> Optional[str]:
        return await self.gate.acknowledge()

    def cancel_release(self) -> bool:
        return self.gate.cancel()

    # -- views -----------------------------------------------------------

    def preview_bytes(self) -> bytes:
        """Return the PNG preview of the current asset."""
        asset = self.asset
        if asset is None:
            raise KeyError("No image has been uploaded")
        return self.previews.resolve(asset.preview)

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-friendly view of the workflow."""
        asset = self.asset
        result = self.result
        return {
            "state": self._state.name,
            "instruction": self.instruction,
            "history": self.history,
            "selected_history": self.selected_history,
            "image": (
                {"filename": asset.filename, "media_type": asset.media_type, "size": asset.size, "preview": asset.preview}
                if asset is not None
                else None
            ),
            "result": (
                {"text": result.text, "instruction": result.instruction, "latency": result.latency}
                if result is not None
                else None
            ),
            "error": self.error_message,
            "notice": self.notice or self.gate.last_notice,
            "download_pending": self.gate.awaiting_acknowledgment,
        }
