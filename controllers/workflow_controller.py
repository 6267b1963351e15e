"""Controllers translating HTTP calls into edit workflow operations."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import Response

from models.errors import IngestionError, ValidationError, WorkflowBusyError
from models.workflow_models import ImageSource
from services.edit_workflow import EditWorkflow
from services.workflow_store import WorkflowStore
from utils.media_validation import parse_data_url


def _store(request: Request) -> WorkflowStore:
	store = getattr(request.app.state, "workflow_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Workflow store unavailable")
	return store


def _workflow(request: Request, workflow_id: str) -> EditWorkflow:
	try:
		return _store(request).get(workflow_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc


def _to_http(exc: Exception) -> HTTPException:
	"""Map workflow errors onto HTTP status codes."""
	if isinstance(exc, WorkflowBusyError):
		return HTTPException(status_code=409, detail=exc.user_message)
	if isinstance(exc, ValidationError):
		return HTTPException(status_code=400, detail=exc.user_message)
	if isinstance(exc, IngestionError):
		return HTTPException(status_code=422, detail=exc.user_message)
	return HTTPException(status_code=500, detail=str(exc))


def _view(workflow_id: str, workflow: EditWorkflow) -> Dict[str, Any]:
	return {"workflow_id": workflow_id, **workflow.snapshot()}


async def create_workflow(request: Request) -> Dict[str, Any]:
	workflow_id, workflow = _store(request).create()
	return _view(workflow_id, workflow)


async def get_workflow(request: Request, workflow_id: str) -> Dict[str, Any]:
	return _view(workflow_id, _workflow(request, workflow_id))


async def close_workflow(request: Request, workflow_id: str) -> Dict[str, Any]:
	try:
		_store(request).close(workflow_id)
	except KeyError as exc:
		raise HTTPException(status_code=404, detail=str(exc)) from exc
	return {"workflow_id": workflow_id, "closed": True}


async def upload_image(request: Request, workflow_id: str, file: UploadFile) -> Dict[str, Any]:
	"""Ingest an uploaded image into the workflow."""
	workflow = _workflow(request, workflow_id)
	raw = await file.read()
	source = ImageSource.from_bytes(raw, filename=file.filename, media_type=file.content_type)
	try:
		await workflow.ingest(source)
	except (ValidationError, IngestionError) as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def load_example(request: Request, workflow_id: str, url: str, prompt: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	try:
		await workflow.load_example(url, prompt)
	except (ValidationError, IngestionError) as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def set_instruction(request: Request, workflow_id: str, text: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	try:
		workflow.set_instruction(text)
	except ValidationError as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def suggest_example(request: Request, workflow_id: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	try:
		workflow.suggest_example()
	except ValidationError as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def select_history(request: Request, workflow_id: str, instruction: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	try:
		workflow.select_from_history(instruction)
	except ValidationError as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def submit(request: Request, workflow_id: str, instruction: Optional[str]) -> Dict[str, Any]:
	"""Submit the instruction and wait for the edit to finish.

	Submission failures come back as a ``failed`` state, not as an HTTP error.
	"""
	workflow = _workflow(request, workflow_id)
	try:
		await workflow.submit(instruction)
	except ValidationError as exc:
		raise _to_http(exc) from exc
	return _view(workflow_id, workflow)


async def reset(request: Request, workflow_id: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	workflow.reset()
	return _view(workflow_id, workflow)


async def get_preview(request: Request, workflow_id: str) -> Response:
	workflow = _workflow(request, workflow_id)
	try:
		png = workflow.preview_bytes()
	except KeyError as exc:
		raise HTTPException(status_code=404, detail="Preview not available") from exc
	return Response(content=png, media_type="image/png")


async def get_result(request: Request, workflow_id: str) -> Response:
	workflow = _workflow(request, workflow_id)
	result = workflow.result
	if result is None:
		raise HTTPException(status_code=404, detail="No edited image available")
	media_type, data = parse_data_url(result.output_reference)
	return Response(content=data, media_type=media_type)


async def request_download(request: Request, workflow_id: str) -> Dict[str, Any]:
	"""Ask for the current result; the client must acknowledge before it is saved."""
	workflow = _workflow(request, workflow_id)
	accepted = workflow.request_release()
	return {"accepted": accepted, **_view(workflow_id, workflow)}


async def acknowledge_download(request: Request, workflow_id: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	filename = await workflow.acknowledge_release()
	return {"released": filename is not None, "filename": filename, **_view(workflow_id, workflow)}


async def cancel_download(request: Request, workflow_id: str) -> Dict[str, Any]:
	workflow = _workflow(request, workflow_id)
	cancelled = workflow.cancel_release()
	return {"cancelled": cancelled, **_view(workflow_id, workflow)}
