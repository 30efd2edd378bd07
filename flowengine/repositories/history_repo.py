"""History Repository - Data access for execution history (append-only)"""
from typing import List
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection, to_document
from ..domain.models import WorkflowHistory
from ..utils.logger import get_logger

logger = get_logger(__name__)


class HistoryRepository:
    """Repository for workflow history entries"""

    def __init__(self):
        self._history: Collection = get_collection("workflow_history")

    def append(self, entry: WorkflowHistory) -> WorkflowHistory:
        """Append a history entry"""
        doc = to_document(entry)
        doc["_id"] = entry.history_id

        self._history.insert_one(doc)
        logger.debug(
            f"History: {entry.event_type.value}",
            extra={"execution_id": entry.execution_id, "node_id": entry.node_id}
        )
        return entry

    def get_for_execution(self, execution_id: str) -> List[WorkflowHistory]:
        """Entries for an execution, oldest first"""
        cursor = self._history.find({"execution_id": execution_id}).sort("timestamp", ASCENDING)
        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(WorkflowHistory.model_validate(doc))
        return entries
