"""Workflow Repository - Data access for workflow definitions"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pydantic import ValidationError

from .mongo_client import get_collection, to_document
from ..domain.models import WorkflowDefinition
from ..domain.errors import DefinitionError, WorkflowNotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class WorkflowRepository:
    """Repository for workflow definitions"""

    def __init__(self):
        self._definitions: Collection = get_collection("workflow_definitions")

    def get_definition(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Get definition by ID"""
        doc = self._definitions.find_one({"workflow_id": workflow_id})
        if doc is None:
            return None
        return self._to_model(doc)

    def get_definition_or_raise(self, workflow_id: str) -> WorkflowDefinition:
        """Get definition by ID or raise error"""
        definition = self.get_definition(workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return definition

    def save_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert or replace a definition (keyed by workflow_id)"""
        now = utc_now()
        definition = definition.model_copy(update={
            "created_at": definition.created_at or now,
            "updated_at": now
        })
        doc = to_document(definition)
        doc["_id"] = definition.workflow_id

        self._definitions.replace_one({"workflow_id": definition.workflow_id}, doc, upsert=True)
        logger.info(
            f"Saved workflow definition: {definition.workflow_id}",
            extra={"workflow_id": definition.workflow_id}
        )
        return definition

    def list_active_definitions(self, trigger_type: Optional[str] = None) -> List[WorkflowDefinition]:
        """List active definitions, defaults first"""
        query: Dict[str, Any] = {"is_active": True}
        if trigger_type:
            query["trigger_type"] = trigger_type

        cursor = self._definitions.find(query).sort([("is_default", -1), ("workflow_id", 1)])
        return [self._to_model(doc) for doc in cursor]

    def _to_model(self, doc: Dict[str, Any]) -> WorkflowDefinition:
        doc.pop("_id", None)
        try:
            return WorkflowDefinition.model_validate(doc)
        except ValidationError as e:
            workflow_id = doc.get("workflow_id")
            logger.error(
                f"Corrupted workflow definition {workflow_id}: {str(e)[:500]}",
                extra={"workflow_id": workflow_id}
            )
            raise DefinitionError(
                f"Workflow {workflow_id} has an invalid definition",
                details={"errors": e.errors(include_url=False, include_context=False)}
            )
