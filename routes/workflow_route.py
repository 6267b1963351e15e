"""FastAPI routes for image edit workflows."""

from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers import workflow_controller as controller

router = APIRouter(prefix="/workflows", tags=["workflows"])


class ExamplePayload(BaseModel):
	url: str
	prompt: str


class InstructionPayload(BaseModel):
	text: str = ""


class HistoryPayload(BaseModel):
	instruction: str


class SubmitPayload(BaseModel):
	instruction: Optional[str] = None


@router.post("")
async def create_workflow_route(request: Request):
	try:
		return await controller.create_workflow(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{workflow_id}")
async def get_workflow_route(request: Request, workflow_id: str):
	try:
		return await controller.get_workflow(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{workflow_id}")
async def close_workflow_route(request: Request, workflow_id: str):
	try:
		return await controller.close_workflow(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/image")
async def upload_image_route(request: Request, workflow_id: str, image: UploadFile = File(...)):
	"""Upload a new source image, replacing the current one."""
	try:
		return await controller.upload_image(request, workflow_id, image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/example")
async def load_example_route(request: Request, workflow_id: str, payload: ExamplePayload):
	"""Load a gallery image by URL along with its example prompt."""
	try:
		return await controller.load_example(request, workflow_id, payload.url, payload.prompt)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/{workflow_id}/instruction")
async def set_instruction_route(request: Request, workflow_id: str, payload: InstructionPayload):
	try:
		return await controller.set_instruction(request, workflow_id, payload.text)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/instruction/example")
async def suggest_example_route(request: Request, workflow_id: str):
	try:
		return await controller.suggest_example(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/history/select")
async def select_history_route(request: Request, workflow_id: str, payload: HistoryPayload):
	try:
		return await controller.select_history(request, workflow_id, payload.instruction)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/submit")
async def submit_route(request: Request, workflow_id: str, payload: SubmitPayload):
	"""Submit an edit instruction and wait for the result."""
	try:
		return await controller.submit(request, workflow_id, payload.instruction)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/reset")
async def reset_route(request: Request, workflow_id: str):
	try:
		return await controller.reset(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{workflow_id}/preview")
async def preview_route(request: Request, workflow_id: str):
	"""Return the PNG preview of the current source image."""
	try:
		return await controller.get_preview(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{workflow_id}/result")
async def result_route(request: Request, workflow_id: str):
	"""Return the edited image bytes for display."""
	try:
		return await controller.get_result(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/download")
async def request_download_route(request: Request, workflow_id: str):
	try:
		return await controller.request_download(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/download/acknowledge")
async def acknowledge_download_route(request: Request, workflow_id: str):
	try:
		return await controller.acknowledge_download(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/{workflow_id}/download/cancel")
async def cancel_download_route(request: Request, workflow_id: str):
	try:
		return await controller.cancel_download(request, workflow_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
