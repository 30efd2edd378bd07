"""Workflow Service - Definition management and trigger matching"""
from typing import Any, Dict, List, Optional, Union
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import ValidationIssue, WorkflowDefinition
from ..domain.errors import ConditionError, WorkflowNotFoundError, WorkflowValidationError
from ..engine.engine import WorkflowEngine
from ..engine.condition_evaluator import ConditionEvaluator
from ..engine.definition_validator import DefinitionValidator
from ..utils.idgen import generate_workflow_id
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """Service for workflow definitions and trigger-driven starts"""

    def __init__(
        self,
        engine: WorkflowEngine,
        evaluator: Optional[ConditionEvaluator] = None
    ):
        self.engine = engine
        self.repo = engine.definitions
        self.evaluator = evaluator or ConditionEvaluator()
        self.validator = DefinitionValidator(self.evaluator)

    # =========================================================================
    # Definitions
    # =========================================================================

    def parse_definition(self, data: Union[Dict[str, Any], WorkflowDefinition]) -> WorkflowDefinition:
        """Build a definition from an authoring document (camelCase or snake_case)"""
        if isinstance(data, WorkflowDefinition):
            return data

        data = dict(data)
        if not data.get("id") and not data.get("workflow_id") and not data.get("workflowId"):
            data["id"] = generate_workflow_id()

        try:
            return WorkflowDefinition.model_validate(data)
        except PydanticValidationError as e:
            raise WorkflowValidationError(
                "Workflow definition is malformed",
                details={"errors": e.errors(include_url=False, include_context=False)}
            )

    def validate_definition(self, data: Union[Dict[str, Any], WorkflowDefinition]) -> List[ValidationIssue]:
        """Parse and check a definition without saving it"""
        return self.validator.validate(self.parse_definition(data))

    def save_definition(self, data: Union[Dict[str, Any], WorkflowDefinition]) -> WorkflowDefinition:
        """
        Validate and save a definition

        Saving over an existing id bumps its version. Executions already
        running keep the version number they started with.
        """
        definition = self.parse_definition(data)
        warnings = self.validator.validate_or_raise(definition)
        for warning in warnings:
            logger.warning(
                f"Workflow {definition.workflow_id}: {warning.code}: {warning.message}",
                extra={"workflow_id": definition.workflow_id, "node_id": warning.node_id}
            )

        existing = self.repo.get_definition(definition.workflow_id)
        if existing is not None:
            definition = definition.model_copy(update={
                "version": existing.version + 1,
                "created_at": existing.created_at
            })

        saved = self.repo.save_definition(definition)
        logger.info(
            f"Saved workflow {saved.workflow_id} v{saved.version}",
            extra={"workflow_id": saved.workflow_id}
        )
        return saved

    def get_definition(self, workflow_id: str) -> WorkflowDefinition:
        definition = self.repo.get_definition(workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return definition

    def check_condition(self, expression: str) -> Dict[str, Any]:
        """Syntax check for the designer: validity, error and referenced variables"""
        valid, error = self.evaluator.is_valid(expression)
        return {
            "valid": valid,
            "error": error,
            "variables": self.evaluator.extract_variables(expression) if valid else []
        }

    # =========================================================================
    # Triggers
    # =========================================================================

    def find_applicable_workflows(
        self,
        trigger_type: str,
        context: Optional[Dict[str, Any]] = None
    ) -> List[WorkflowDefinition]:
        """
        Active definitions for a trigger whose trigger condition holds

        Default definitions come first. A definition whose condition cannot
        be evaluated against this context is skipped.
        """
        context = context or {}
        matches = []
        for definition in self.repo.list_active_definitions(trigger_type):
            if definition.trigger_conditions:
                try:
                    if not self.evaluator.evaluate(definition.trigger_conditions, context):
                        continue
                except ConditionError as e:
                    logger.warning(
                        f"Skipping workflow {definition.workflow_id}: {e.message}",
                        extra={"workflow_id": definition.workflow_id}
                    )
                    continue
            matches.append(definition)

        return sorted(matches, key=lambda d: not d.is_default)

    def start_for_trigger(
        self,
        trigger_type: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Start the best matching workflow; None when nothing applies"""
        matches = self.find_applicable_workflows(trigger_type, context)
        if not matches:
            logger.info(f"No workflow applies to trigger '{trigger_type}'")
            return None

        definition = matches[0]
        return self.engine.start_execution(definition.workflow_id, context, trigger_type=trigger_type)
