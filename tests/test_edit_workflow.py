"""Tests for the EditWorkflow state machine."""

from __future__ import annotations

import asyncio
import random

import httpx
import pytest

from models.errors import GENERIC_RETRY_MESSAGE, EncodingError, IngestionError, ServiceError, ValidationError, WorkflowBusyError
from models.workflow_models import Failed, Idle, ImageSource, Ready, Submitting, Succeeded
from services.edit_workflow import EXAMPLE_LOAD_FAILED, EditWorkflow
from services.image_ingestion import ImageIngestor
from services.openai.edit_prompts import EXAMPLE_PROMPTS


def _source(data: bytes, name: str = "cat.png") -> ImageSource:
    return ImageSource.from_bytes(data, filename=name, media_type="image/png")


# ============================================================================
# Ingestion
# ============================================================================


@pytest.mark.anyio
async def test_starts_idle(workflow) -> None:
    assert isinstance(workflow.state, Idle)
    assert workflow.asset is None
    assert workflow.history == []


@pytest.mark.anyio
async def test_ingest_moves_to_ready(workflow, png_bytes) -> None:
    asset = await workflow.ingest(_source(png_bytes))
    assert workflow.state == Ready(asset)
    assert workflow.instruction == ""


@pytest.mark.anyio
async def test_camera_jpeg_moves_to_ready(workflow, mpo_bytes) -> None:
    asset = await workflow.ingest(ImageSource.from_bytes(mpo_bytes, filename="photo.jpg", media_type="image/jpeg"))
    assert workflow.state == Ready(asset)
    assert asset.media_type == "image/jpeg"

@pytest.mark.anyio
async def test_repeated_ingest_keeps_exactly_one_live_preview(workflow, png_bytes, jpeg_bytes) -> None:
    handles = []
    for data in (png_bytes, jpeg_bytes, png_bytes, jpeg_bytes):
        asset = await workflow.ingest(_source(data))
        handles.append(asset.preview)

    assert workflow.previews.live_count == 1
    assert workflow.previews.is_live(handles[-1])
    assert not any(workflow.previews.is_live(handle) for handle in handles[:-1])


@pytest.mark.anyio
async def test_reingest_after_success_clears_result_but_keeps_history(workflow, png_bytes, jpeg_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    await workflow.submit("add hat")
    assert isinstance(workflow.state, Succeeded)
    workflow.select_from_history("add hat")

    asset = await workflow.ingest(_source(jpeg_bytes, "dog.jpg"))

    assert workflow.state == Ready(asset)
    assert workflow.result is None
    assert workflow.instruction == ""
    assert workflow.selected_history is None
    assert workflow.history == ["add hat"]


@pytest.mark.anyio
async def test_failed_ingest_leaves_state_untouched(workflow, png_bytes) -> None:
    asset = await workflow.ingest(_source(png_bytes))
    workflow.set_instruction("add hat")

    with pytest.raises(IngestionError):
        await workflow.ingest(_source(b"garbage"))

    assert workflow.state == Ready(asset)
    assert workflow.instruction == "add hat"
    assert workflow.notice == IngestionError.default_message
    assert workflow.previews.live_count == 1


@pytest.mark.anyio
async def test_ingest_rejected_while_submitting(workflow, fake_service, png_bytes, jpeg_bytes, waiters) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    submission = workflow.begin_submission("add hat")
    task = asyncio.create_task(workflow.run_submission(submission))
    await waiters(fake_service, 1)

    with pytest.raises(WorkflowBusyError):
        await workflow.ingest(_source(jpeg_bytes))

    fake_service.waiters[0].set()
    await task
    assert isinstance(workflow.state, Succeeded)


@pytest.mark.anyio
async def test_load_example_sets_prompt(png_bytes) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=png_bytes))
    ingestor = ImageIngestor(http_client=httpx.AsyncClient(transport=transport))
    workflow = EditWorkflow(service=None, sink=None, ingestor=ingestor)

    await workflow.load_example("https://example.test/cat.png", "Make the cat wear a tiny wizard hat.")

    assert isinstance(workflow.state, Ready)
    assert workflow.instruction == "Make the cat wear a tiny wizard hat."


@pytest.mark.anyio
async def test_load_example_failure_sets_notice() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    ingestor = ImageIngestor(http_client=httpx.AsyncClient(transport=transport))
    workflow = EditWorkflow(service=None, sink=None, ingestor=ingestor)

    with pytest.raises(IngestionError) as info:
        await workflow.load_example("https://example.test/cat.png", "prompt")

    assert info.value.user_message == EXAMPLE_LOAD_FAILED
    assert workflow.notice == EXAMPLE_LOAD_FAILED
    assert isinstance(workflow.state, Idle)


# ============================================================================
# Submission
# ============================================================================


@pytest.mark.anyio
async def test_submit_without_image_is_validation_error(workflow) -> None:
    with pytest.raises(ValidationError):
        await workflow.submit("add hat")
    assert isinstance(workflow.state, Idle)
    assert workflow.history == []


@pytest.mark.anyio
@pytest.mark.parametrize("blank", ["", "   "])
async def test_submit_blank_instruction_is_rejected(workflow, fake_service, png_bytes, blank) -> None:
    asset = await workflow.ingest(_source(png_bytes))

    with pytest.raises(ValidationError) as info:
        await workflow.submit(blank)

    assert info.value.user_message == "Please provide an image and a descriptive prompt."
    assert workflow.state == Ready(asset)
    assert workflow.history == []
    assert fake_service.calls == []


@pytest.mark.anyio
async def test_submit_success_records_history_and_result(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))

    state = await workflow.submit("  add hat ")

    assert isinstance(state, Succeeded)
    assert workflow.history == ["add hat"]
    assert workflow.result.text == "Edited with: add hat"
    payload, instruction = fake_service.calls[0]
    assert instruction == "add hat"
    assert payload.media_type == "image/png"


@pytest.mark.anyio
async def test_submit_uses_instruction_draft(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    workflow.set_instruction("make it snow")

    await workflow.submit()

    assert fake_service.calls[0][1] == "make it snow"


@pytest.mark.anyio
async def test_same_instruction_twice_replaces_result(workflow, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    await workflow.submit("add hat")
    first = workflow.result

    await workflow.submit("add hat")

    assert workflow.history == ["add hat"]
    assert workflow.result is not first
    assert workflow.result.output_reference != first.output_reference


@pytest.mark.anyio
async def test_history_recorded_when_service_fails(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.errors.append(ServiceError("Your request was rejected by the safety system."))

    state = await workflow.submit("add hat")

    assert isinstance(state, Failed)
    assert state.message == "Your request was rejected by the safety system."
    assert workflow.history == ["add hat"]


@pytest.mark.anyio
async def test_service_error_without_message_uses_generic(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.errors.append(ServiceError())

    state = await workflow.submit("add hat")

    assert state.message == GENERIC_RETRY_MESSAGE


@pytest.mark.anyio
async def test_unexpected_exception_becomes_failed(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.errors.append(RuntimeError("socket exploded"))

    state = await workflow.submit("add hat")

    assert isinstance(state, Failed)
    assert state.message == GENERIC_RETRY_MESSAGE


@pytest.mark.anyio
async def test_encoding_failure_becomes_failed(workflow, fake_service, image_file) -> None:
    await workflow.ingest(ImageSource.from_path(image_file))
    image_file.unlink()

    state = await workflow.submit("add hat")

    assert isinstance(state, Failed)
    assert state.message == EncodingError.default_message
    assert fake_service.calls == []


@pytest.mark.anyio
async def test_can_retry_after_failure(workflow, fake_service, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.errors.append(ServiceError("busy"))
    await workflow.submit("add hat")

    state = await workflow.submit("add hat")

    assert isinstance(state, Succeeded)


@pytest.mark.anyio
async def test_submit_while_submitting_is_rejected(workflow, fake_service, png_bytes, waiters) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    submission = workflow.begin_submission("add hat")
    task = asyncio.create_task(workflow.run_submission(submission))
    await waiters(fake_service, 1)

    with pytest.raises(WorkflowBusyError):
        await workflow.submit("something else")

    assert isinstance(workflow.state, Submitting)
    assert workflow.state.submission is submission
    assert workflow.history == ["add hat"]
    assert len(fake_service.calls) == 1

    fake_service.waiters[0].set()
    assert isinstance(await task, Succeeded)


@pytest.mark.anyio
async def test_instruction_edits_rejected_while_submitting(workflow, fake_service, png_bytes, waiters) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    task = asyncio.create_task(workflow.submit("add hat"))
    await waiters(fake_service, 1)

    with pytest.raises(WorkflowBusyError):
        workflow.set_instruction("other")
    with pytest.raises(WorkflowBusyError):
        workflow.suggest_example()

    fake_service.waiters[0].set()
    await task


# ============================================================================
# Reset and stale completions
# ============================================================================


@pytest.mark.anyio
async def test_reset_clears_everything(workflow, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    await workflow.submit("add hat")

    workflow.reset()

    assert isinstance(workflow.state, Idle)
    assert workflow.history == []
    assert workflow.instruction == ""
    assert workflow.result is None
    assert workflow.previews.live_count == 0


@pytest.mark.anyio
@pytest.mark.parametrize("fails", [False, True])
async def test_reset_during_submission_discards_completion(workflow, fake_service, png_bytes, waiters, fails) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    if fails:
        fake_service.errors.append(ServiceError("late failure"))
    task = asyncio.create_task(workflow.submit("add hat"))
    await waiters(fake_service, 1)

    workflow.reset()
    fake_service.waiters[0].set()
    state = await task

    assert isinstance(state, Idle)
    assert isinstance(workflow.state, Idle)
    assert workflow.history == []


@pytest.mark.anyio
async def test_stale_completion_does_not_overwrite_newer_submission(
    workflow, fake_service, png_bytes, jpeg_bytes, waiters
) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    old_task = asyncio.create_task(workflow.submit("add hat"))
    await waiters(fake_service, 1)

    workflow.reset()
    await workflow.ingest(_source(jpeg_bytes, "dog.jpg"))
    new_task = asyncio.create_task(workflow.submit("make it snow"))
    await waiters(fake_service, 2)

    # The newer submission finishes first, then the stale one arrives.
    fake_service.waiters[1].set()
    await new_task
    newer_result = workflow.result
    fake_service.waiters[0].set()
    await old_task

    assert workflow.result is newer_result
    assert workflow.result.instruction == "make it snow"
    assert workflow.history == ["make it snow"]


@pytest.mark.anyio
async def test_stale_completion_ignored_while_newer_still_in_flight(
    workflow, fake_service, png_bytes, waiters
) -> None:
    await workflow.ingest(_source(png_bytes))
    fake_service.hold = True
    old_task = asyncio.create_task(workflow.submit("add hat"))
    await waiters(fake_service, 1)

    workflow.reset()
    await workflow.ingest(_source(png_bytes))
    new_task = asyncio.create_task(workflow.submit("make it snow"))
    await waiters(fake_service, 2)

    fake_service.waiters[0].set()
    await old_task
    assert isinstance(workflow.state, Submitting)
    assert workflow.state.instruction == "make it snow"

    fake_service.waiters[1].set()
    await new_task
    assert workflow.result.instruction == "make it snow"


# ============================================================================
# Instruction draft helpers
# ============================================================================


@pytest.mark.anyio
async def test_select_from_history(workflow, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    await workflow.submit("add hat")
    await workflow.submit("make it snow")

    workflow.select_from_history("add hat")

    assert workflow.instruction == "add hat"
    assert workflow.selected_history == "add hat"


def test_select_unknown_history_entry(workflow) -> None:
    with pytest.raises(ValidationError):
        workflow.select_from_history("never used")


def test_suggest_example_uses_example_prompts(fake_service, recording_sink) -> None:
    workflow = EditWorkflow(fake_service, recording_sink, rng=random.Random(7))
    suggestion = workflow.suggest_example()
    assert suggestion in EXAMPLE_PROMPTS
    assert workflow.instruction == suggestion


@pytest.mark.anyio
async def test_snapshot_reports_state(workflow, png_bytes) -> None:
    await workflow.ingest(_source(png_bytes))
    await workflow.submit("add hat")

    snap = workflow.snapshot()

    assert snap["state"] == "succeeded"
    assert snap["history"] == ["add hat"]
    assert snap["image"]["media_type"] == "image/png"
    assert snap["result"]["instruction"] == "add hat"
    assert snap["error"] is None
    assert snap["download_pending"] is False
