"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class WorkflowValidationError(ValidationError):
    """Workflow definition validation failed"""
    error_code = "WORKFLOW_VALIDATION_ERROR"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class WorkflowNotFoundError(NotFoundError):
    """Workflow definition not found"""
    error_code = "WORKFLOW_NOT_FOUND"


class ExecutionNotFoundError(NotFoundError):
    """Workflow execution not found"""
    error_code = "EXECUTION_NOT_FOUND"


class TaskNotFoundError(NotFoundError):
    """Workflow task not found"""
    error_code = "TASK_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class ExecutionLockedError(ConflictError):
    """Another invocation currently owns the execution"""
    error_code = "EXECUTION_LOCKED"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class DefinitionError(EngineError):
    """Malformed workflow graph or node configuration"""
    error_code = "DEFINITION_ERROR"
    http_status = 422


class StepBudgetExceededError(EngineError):
    """A single invocation visited more nodes than allowed"""
    error_code = "STEP_BUDGET_EXCEEDED"


class ConditionError(EngineError):
    """Base class for condition expression failures"""
    error_code = "CONDITION_ERROR"
    http_status = 422


class ConditionSyntaxError(ConditionError):
    """Condition expression could not be parsed"""
    error_code = "CONDITION_SYNTAX_ERROR"


class ConditionEvaluationError(ConditionError):
    """Condition expression parsed but could not be evaluated"""
    error_code = "CONDITION_EVALUATION_ERROR"


class AssignmentResolutionError(EngineError):
    """Could not resolve the assignee of a task"""
    error_code = "ASSIGNMENT_RESOLUTION_ERROR"
    http_status = 400


class ActionExecutionError(EngineError):
    """A domain operation invoked by an action node failed"""
    error_code = "ACTION_EXECUTION_ERROR"


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class IntegrationError(ExternalServiceError):
    """Outbound integration call failed, timed out or returned non-2xx"""
    error_code = "INTEGRATION_ERROR"


class NotificationSendError(ExternalServiceError):
    """Notification channel rejected the message"""
    error_code = "NOTIFICATION_SEND_ERROR"
