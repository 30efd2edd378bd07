"""Workflow API Routes - Definition endpoints"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_correlation_id_dep, get_workflow_service_dep
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class ValidateConditionRequest(BaseModel):
    """Condition expression to check"""
    expression: str = Field(..., min_length=1, max_length=2000)


class ValidateConditionResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    variables: List[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Definition check without saving"""
    is_valid: bool
    issues: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Routes
# ============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def save_workflow(
    definition: Dict[str, Any],
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create or replace a workflow definition

    The definition is validated first; a definition with errors is
    rejected with WORKFLOW_VALIDATION_ERROR and the issue list. Warnings
    are logged and do not block the save.
    """
    saved = service.save_definition(definition)
    return saved.model_dump(mode="json", by_alias=True)


@router.get("")
def list_workflows(
    trigger_type: Optional[str] = Query(None, alias="triggerType"),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List active definitions, defaults first"""
    definitions = service.repo.list_active_definitions(trigger_type)
    return {"items": [d.model_dump(mode="json", by_alias=True) for d in definitions]}


@router.post("/validate", response_model=ValidationResult)
def validate_workflow(
    definition: Dict[str, Any],
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    issues = service.validate_definition(definition)
    return ValidationResult(
        is_valid=not any(issue.is_error for issue in issues),
        issues=[i.model_dump() for i in issues]
    )


@router.post("/validate-condition", response_model=ValidateConditionResponse)
def validate_condition(
    request: ValidateConditionRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Check a condition expression's syntax and list the variables it reads"""
    return ValidateConditionResponse(**service.check_condition(request.expression))


@router.get("/{workflow_id}")
def get_workflow(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    definition = service.get_definition(workflow_id)
    return definition.model_dump(mode="json", by_alias=True)
