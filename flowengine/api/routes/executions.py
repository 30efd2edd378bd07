"""Execution API Routes - Start, inspect, resume and cancel executions"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..deps import get_correlation_id_dep, get_engine_dep, get_workflow_service_dep
from ...domain.models import ExecutionStatusView
from ...engine.engine import WorkflowEngine
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartExecutionRequest(CamelModel):
    """Start a specific workflow"""
    workflow_id: str = Field(..., min_length=1)
    context: Dict[str, Any] = Field(default_factory=dict)
    trigger_type: Optional[str] = None


class TriggerRequest(CamelModel):
    """Start whichever workflow applies to an event"""
    trigger_type: str = Field(..., min_length=1)
    context: Dict[str, Any] = Field(default_factory=dict)


class StartExecutionResponse(CamelModel):
    execution_id: Optional[str] = None
    status: Optional[str] = None


class ResumeRequest(CamelModel):
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class CancelRequest(CamelModel):
    actor_id: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=2000)


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=StartExecutionResponse, status_code=status.HTTP_201_CREATED)
def start_execution(
    request: StartExecutionRequest,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Start an execution and run it until it pauses or ends

    Node failures do not fail the request: the execution id is returned
    and its status shows FAILED.
    """
    execution_id = engine.start_execution(request.workflow_id, request.context, request.trigger_type)
    view = engine.get_execution_status(execution_id)
    return StartExecutionResponse(execution_id=execution_id, status=view.status.value)


@router.post("/trigger", response_model=StartExecutionResponse)
def trigger_execution(
    request: TriggerRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Start the best matching workflow for a trigger; empty body when none applies"""
    execution_id = service.start_for_trigger(request.trigger_type, request.context)
    if execution_id is None:
        return StartExecutionResponse()
    view = service.engine.get_execution_status(execution_id)
    return StartExecutionResponse(execution_id=execution_id, status=view.status.value)


@router.get("/{execution_id}", response_model=ExecutionStatusView)
def get_execution_status(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    return engine.get_execution_status(execution_id)


@router.get("/{execution_id}/history")
def get_execution_history(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, List[Dict[str, Any]]]:
    entries = engine.get_execution_history(execution_id)
    return {"items": [e.model_dump(mode="json") for e in entries]}


@router.get("/{execution_id}/tasks")
def get_execution_tasks(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, List[Dict[str, Any]]]:
    tasks = engine.get_tasks_for_execution(execution_id)
    return {"items": [t.model_dump(mode="json") for t in tasks]}


@router.post("/{execution_id}/resume", response_model=ExecutionStatusView)
def resume_execution(
    execution_id: str,
    request: ResumeRequest,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Resume a PAUSED execution; other statuses are returned unchanged"""
    return engine.resume_execution(execution_id, request.actor_id, request.payload)


@router.post("/{execution_id}/cancel", response_model=ExecutionStatusView)
def cancel_execution(
    execution_id: str,
    request: CancelRequest,
    engine: WorkflowEngine = Depends(get_engine_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    logger.info(
        f"Cancel requested for execution {execution_id}",
        extra={"execution_id": execution_id, "actor_id": request.actor_id}
    )
    return engine.cancel_execution(execution_id, request.actor_id, request.reason)
