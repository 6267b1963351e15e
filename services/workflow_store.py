"""Simple in-memory store of edit workflows, one per browser session."""

from __future__ import annotations

from typing import Callable, Dict
from uuid import uuid4

from services.edit_workflow import EditWorkflow


class WorkflowStore:
	"""Create, look up and close edit workflows by id."""

	def __init__(self, factory: Callable[[], EditWorkflow]) -> None:
		self._factory = factory
		self._workflows: Dict[str, EditWorkflow] = {}

	def create(self) -> tuple[str, EditWorkflow]:
		"""Create a new workflow and return ``(workflow_id, workflow)``."""
		workflow_id = uuid4().hex
		workflow = self._factory()
		self._workflows[workflow_id] = workflow
		return workflow_id, workflow

	def get(self, workflow_id: str) -> EditWorkflow:
		"""Return a workflow or raise KeyError if missing."""
		workflow = self._workflows.get(workflow_id)
		if workflow is None:
			raise KeyError(f"Workflow {workflow_id} not found")
		return workflow

	def close(self, workflow_id: str) -> None:
		"""Reset and forget a workflow so its preview is released."""
		workflow = self.get(workflow_id)
		workflow.reset()
		del self._workflows[workflow_id]

	def __len__(self) -> int:
		return len(self._workflows)
