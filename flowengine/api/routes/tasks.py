"""Task API Routes - Human task completion"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..deps import get_correlation_id_dep, get_engine_dep
from ...domain.models import ExecutionStatusView
from ...engine.engine import WorkflowEngine

router = APIRouter()


class CompleteTaskRequest(BaseModel):
    """Decision taken on a pending task"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    actor_id: Optional[str] = None
    action: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=4000)


@router.get("/{task_id}")
def get_task(
    task_id: str,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    return engine.get_task(task_id).model_dump(mode="json")


@router.post("/{task_id}/complete", response_model=ExecutionStatusView)
def complete_task(
    task_id: str,
    request: CompleteTaskRequest,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Complete a task and resume the execution waiting on it

    Returns the execution's status after the resume.
    """
    return engine.complete_task(task_id, request.actor_id, request.action, request.notes)
